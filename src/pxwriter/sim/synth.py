from __future__ import annotations
import numpy as np
from typing import Iterator, List, Tuple
from ..physics.hits import MCParticle, PixelHit, PixelHitMessage
from ..geometry.detector import DetectorDescriptor, GeometryRegistry

PDG_ELECTRON = 11

def _local_to_global(det: DetectorDescriptor, local: np.ndarray) -> np.ndarray:
    # local origin is the center of the pixel matrix
    return det.position + det.orientation @ local

def synth_pixel_events(
    registry: GeometryRegistry,
    n_events: int,
    hits_per_detector: float = 2.0,
    rng: np.random.Generator | None = None,
    first_event: int = 1,
    time_spread_ns: float = 25.0,
) -> Iterator[Tuple[int, List[PixelHitMessage]]]:
    """
    Generate straight beam tracks crossing every plane of the telescope.

    Per event a Poisson(hits_per_detector) number of tracks is drawn; each
    track keeps its fractional (u, v) position across planes, smeared by one
    pixel, and leaves one pixel hit per detector. Every hit carries the
    producing MCParticle, so truth export has something to link.
    """
    rng = rng or np.random.default_rng()
    dets = list(registry)
    next_track = 0

    for ev in range(first_event, first_event + n_events):
        n_tracks = int(rng.poisson(hits_per_detector))
        # fractional position in [0, 1) of the matrix, one row per track
        uv = rng.uniform(0.0, 1.0, size=(n_tracks, 2))
        t0 = rng.uniform(0.0, time_spread_ns, size=n_tracks)
        track_ids = np.arange(next_track, next_track + n_tracks)
        next_track += n_tracks

        messages: List[PixelHitMessage] = []
        for det in dets:
            model = det.model
            nx, ny = model.n_pixels
            msg = PixelHitMessage(det.name)
            for k in range(n_tracks):
                col = int(np.clip(np.floor(uv[k, 0] * nx + rng.normal(0.0, 1.0)), 0, nx - 1))
                row = int(np.clip(np.floor(uv[k, 1] * ny + rng.normal(0.0, 1.0)), 0, ny - 1))
                signal = float(rng.gamma(shape=4.0, scale=5.0))

                px, py = model.pixel_size
                centre = np.array([(col + 0.5) * px - 0.5 * nx * px, (row + 0.5) * py - 0.5 * ny * py, 0.0])
                half_t = np.array([0.0, 0.0, 0.5 * model.sensor_thickness])
                particle = MCParticle(
                    track_id=int(track_ids[k]),
                    pdg=PDG_ELECTRON,
                    entry=_local_to_global(det, centre - half_t),
                    exit=_local_to_global(det, centre + half_t),
                )
                msg.hits.append(PixelHit(det.name, (col, row), signal, float(t0[k]), [particle]))
            messages.append(msg)
        yield ev, messages
