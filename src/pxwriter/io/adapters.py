"""
pxwriter.io.adapters

Readers that turn tabular pixel-hit dumps into per-event PixelHitMessages,
one message per detector, in the shape the writer consumes.

Table schema (CSV / Parquet / HDF5 via pandas)
----------------------------------------------
event     int    event number (1-based, as delivered by the simulation)
detector  str    detector name
column    int    pixel column
row       int    pixel row
signal    float  digitized signal
time      float  hit time [ns]              (optional)
mc_track  int    truth track id, -1 = none  (optional)
mc_pdg    int    truth PDG code             (optional)

Events missing from the table between the first and last event number are
delivered as empty events so the event sequence stays contiguous.
"""
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd

from pxwriter.errors import ConfigurationError
from pxwriter.physics.hits import MCParticle, PixelHit, PixelHitMessage

REQUIRED_COLUMNS = ("event", "detector", "column", "row", "signal")

EventMessages = Tuple[int, List[PixelHitMessage]]


@dataclass
class TableAdapter:
    time_column: str = "time"
    track_column: str = "mc_track"
    pdg_column: str = "mc_pdg"
    hdf_key: str = "hits"

    def read(self, path: str | Path) -> pd.DataFrame:
        p = Path(path)
        suffix = p.suffix.lower()
        if suffix in (".csv", ".txt"):
            df = pd.read_csv(p)
        elif suffix in (".parquet", ".pq"):
            df = pd.read_parquet(p)
        elif suffix in (".h5", ".hdf5"):
            df = pd.read_hdf(p, key=self.hdf_key)
        else:
            raise ConfigurationError(f"Unsupported hit table format '{suffix}' for {p}")

        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ConfigurationError(f"Hit table {p} is missing column(s): {', '.join(missing)}")
        df = df.astype({"event": np.int64, "column": np.int64, "row": np.int64, "signal": np.float64})
        df["detector"] = df["detector"].astype(str)
        return df.sort_values("event", kind="stable")

    def _row_to_hit(self, det: str, row) -> PixelHit:
        t = float(getattr(row, self.time_column, 0.0))
        particles = []
        track = getattr(row, self.track_column, None)
        if track is not None and not pd.isna(track) and int(track) >= 0:
            pdg = getattr(row, self.pdg_column, 0)
            particles.append(MCParticle(track_id=int(track), pdg=0 if pd.isna(pdg) else int(pdg)))
        return PixelHit(det, (int(row.column), int(row.row)), float(row.signal), t, particles)

    def events_from_frame(self, df: pd.DataFrame) -> Iterator[EventMessages]:
        if df.empty:
            return
        grouped: Dict[int, pd.DataFrame] = {int(k): g for k, g in df.groupby("event", sort=True)}
        first, last = min(grouped), max(grouped)
        for ev in range(first, last + 1):
            g = grouped.get(ev)
            if g is None:
                yield ev, []
                continue
            messages: Dict[str, PixelHitMessage] = {}
            for row in g.itertuples(index=False):
                det = row.detector
                msg = messages.setdefault(det, PixelHitMessage(det))
                msg.hits.append(self._row_to_hit(det, row))
            yield ev, list(messages.values())

    def iter_events(self, path: str | Path) -> Iterator[EventMessages]:
        return self.events_from_frame(self.read(path))


def make_adapter(cfg: Optional[dict] = None) -> TableAdapter:
    return TableAdapter(**(cfg or {}))
