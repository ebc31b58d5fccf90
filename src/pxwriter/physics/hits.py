from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Tuple
import numpy as np

@dataclass(slots=True)
class MCParticle:
    """
    Monte-Carlo truth for the particle that produced (part of) a hit.

    track_id: truth track this particle belongs to
    pdg: PDG particle code
    entry, exit: global positions where the particle enters/leaves the sensor [mm]
    """
    track_id: int
    pdg: int = 0
    entry: np.ndarray = field(default_factory=lambda: np.zeros(3))
    exit: np.ndarray = field(default_factory=lambda: np.zeros(3))

    @property
    def midpoint(self) -> np.ndarray:
        return 0.5 * (np.asarray(self.entry, dtype=float) + np.asarray(self.exit, dtype=float))


@dataclass(slots=True)
class PixelHit:
    """
    Digitized pixel hit.

    index: (column, row) of the pixel in the detector matrix
    signal: digitized charge / ToT
    time_ns: local hit time [ns]
    mc_particles: truth particles contributing to this pixel (may be empty)
    """
    detector: str
    index: Tuple[int, int]
    signal: float
    time_ns: float = 0.0
    mc_particles: List[MCParticle] = field(default_factory=list)


@dataclass(slots=True)
class PixelHitMessage:
    """
    All pixel hits of one detector for one event.
    """
    detector: str
    hits: List[PixelHit] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.hits)
