"""
pxwriter.io.event_record

Per-event output record and the builder that fills it.

The builder is a pure transform: messages in, OutputRecord out, no I/O.
Persisting the record is the job of pxwriter.io.run_store.RunFileSession.

Hit encoding
------------
pixel_type = 1  simple sparse pixel   (sensor_id, x, y, signal)
pixel_type = 2  generic sparse pixel  (sensor_id, x, y, signal, time)

Truth sub-collections (only when dump_mc_truth is enabled)
----------------------------------------------------------
sim_hit      one row per (hit, MC particle); links (collection, hit) to the track
raw_cluster  one row per truth-matched hit; links (collection, hit) to a cluster
cluster      one row per truth cluster: pixels on one sensor from one track
track        one row per truth track seen in the event
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from pxwriter.config.assignment import CollectionAssignment
from pxwriter.physics.hits import PixelHitMessage

RUN_NUMBER = 1
EVENT_TYPE = 2

_SIMPLE = [("sensor_id", "i4"), ("x", "i4"), ("y", "i4"), ("signal", "f8")]
HIT_DTYPES: Dict[int, np.dtype] = {
    1: np.dtype(_SIMPLE),
    2: np.dtype(_SIMPLE + [("time", "f8")]),
}

SIM_HIT_DTYPE = np.dtype([
    ("collection", "i4"), ("hit", "i4"), ("sensor_id", "i4"),
    ("track_id", "i4"), ("pdg", "i4"),
    ("x", "f8"), ("y", "f8"), ("z", "f8"),
])
RAW_CLUSTER_DTYPE = np.dtype([("collection", "i4"), ("hit", "i4"), ("cluster", "i4")])
CLUSTER_DTYPE = np.dtype([
    ("cluster", "i4"), ("sensor_id", "i4"), ("track_id", "i4"), ("size", "i4"),
    ("signal", "f8"), ("x", "f8"), ("y", "f8"),
])
TRACK_DTYPE = np.dtype([("track_id", "i4"), ("pdg", "i4"), ("n_hits", "i4"), ("n_sensors", "i4")])

TRUTH_NAMES = ("cluster", "raw_cluster", "sim_hit", "track")
TRUTH_DTYPES = {
    "cluster": CLUSTER_DTYPE,
    "raw_cluster": RAW_CLUSTER_DTYPE,
    "sim_hit": SIM_HIT_DTYPE,
    "track": TRACK_DTYPE,
}


@dataclass
class HitCollection:
    name: str
    pixel_type: int
    hits: np.ndarray  # structured, HIT_DTYPES[pixel_type]

    def __len__(self) -> int:
        return len(self.hits)


@dataclass
class TruthCollections:
    cluster: np.ndarray
    raw_cluster: np.ndarray
    sim_hit: np.ndarray
    track: np.ndarray

    def items(self) -> Iterable[Tuple[str, np.ndarray]]:
        for name in TRUTH_NAMES:
            yield name, getattr(self, name)


@dataclass
class OutputRecord:
    run_number: int
    event_number: int
    event_type: int
    collections: List[HitCollection]
    truth: Optional[TruthCollections] = None

    @property
    def collection_names(self) -> List[str]:
        return [c.name for c in self.collections]

    def collection(self, name: str) -> HitCollection:
        for c in self.collections:
            if c.name == name:
                return c
        raise KeyError(f"No collection '{name}' in event {self.event_number}")

    @property
    def n_hits(self) -> int:
        return sum(len(c) for c in self.collections)


class EventRecordBuilder:
    """
    Turns one event's PixelHitMessages into an OutputRecord.

    event_number must be the event's position in the run sequence; the
    builder does not check for gaps or repeats.
    """

    def __init__(
        self,
        assignment: CollectionAssignment,
        *,
        run_number: int = RUN_NUMBER,
        event_type: int = EVENT_TYPE,
        pixel_type: int = 2,
        dump_mc_truth: bool = False,
    ):
        if pixel_type not in HIT_DTYPES:
            raise ValueError(f"Unsupported pixel_type {pixel_type}; expected one of {sorted(HIT_DTYPES)}")
        self.assignment = assignment
        self.run_number = int(run_number)
        self.event_type = int(event_type)
        self.pixel_type = int(pixel_type)
        self.dump_mc_truth = bool(dump_mc_truth)

    def build(self, event_number: int, messages: Iterable[PixelHitMessage]) -> OutputRecord:
        messages = list(messages)
        # Route every message first so an unknown detector fails before anything is filled
        routes = [
            (msg, self.assignment.collection_index(self.assignment.collection_for(msg.detector)),
             self.assignment.sensor_id_for(msg.detector))
            for msg in messages
        ]

        rows: List[list] = [[] for _ in self.assignment.collection_names]
        # (collection index, hit index in collection, sensor_id, hit) for truth linking
        placed = []
        for msg, ci, sid in routes:
            for hit in msg.hits:
                x, y = int(hit.index[0]), int(hit.index[1])
                if self.pixel_type == 1:
                    row = (sid, x, y, float(hit.signal))
                else:
                    row = (sid, x, y, float(hit.signal), float(hit.time_ns))
                placed.append((ci, len(rows[ci]), sid, hit))
                rows[ci].append(row)

        dtype = HIT_DTYPES[self.pixel_type]
        collections = [
            HitCollection(name=name, pixel_type=self.pixel_type, hits=np.array(rows[i], dtype=dtype))
            for i, name in enumerate(self.assignment.collection_names)
        ]

        truth = self._build_truth(placed) if self.dump_mc_truth else None
        return OutputRecord(
            run_number=self.run_number,
            event_number=int(event_number),
            event_type=self.event_type,
            collections=collections,
            truth=truth,
        )

    @staticmethod
    def _build_truth(placed) -> TruthCollections:
        sim_rows = []
        raw_rows = []
        clusters: Dict[Tuple[int, int], dict] = {}
        tracks: Dict[int, dict] = {}

        for ci, hi, sid, hit in placed:
            for p in hit.mc_particles:
                mid = p.midpoint
                sim_rows.append((ci, hi, sid, p.track_id, p.pdg, mid[0], mid[1], mid[2]))
                t = tracks.setdefault(p.track_id, {"pdg": p.pdg, "n_hits": 0, "sensors": set()})
                t["n_hits"] += 1
                t["sensors"].add(sid)

            if not hit.mc_particles:
                continue
            # Truth clusters group pixels of one sensor by their leading particle's track
            key = (sid, hit.mc_particles[0].track_id)
            cl = clusters.get(key)
            if cl is None:
                cl = clusters[key] = {"id": len(clusters), "size": 0, "signal": 0.0,
                                      "sx": 0.0, "sy": 0.0, "ux": 0.0, "uy": 0.0}
            w = float(hit.signal)
            cl["size"] += 1
            cl["signal"] += w
            cl["sx"] += w * hit.index[0]
            cl["sy"] += w * hit.index[1]
            cl["ux"] += hit.index[0]
            cl["uy"] += hit.index[1]
            raw_rows.append((ci, hi, cl["id"]))

        cluster_rows = []
        for (sid, track_id), cl in clusters.items():
            if cl["signal"] != 0.0:
                cx, cy = cl["sx"] / cl["signal"], cl["sy"] / cl["signal"]
            else:
                cx, cy = cl["ux"] / cl["size"], cl["uy"] / cl["size"]
            cluster_rows.append((cl["id"], sid, track_id, cl["size"], cl["signal"], cx, cy))

        track_rows = [
            (tid, t["pdg"], t["n_hits"], len(t["sensors"]))
            for tid, t in sorted(tracks.items())
        ]

        return TruthCollections(
            cluster=np.array(cluster_rows, dtype=CLUSTER_DTYPE),
            raw_cluster=np.array(raw_rows, dtype=RAW_CLUSTER_DTYPE),
            sim_hit=np.array(sim_rows, dtype=SIM_HIT_DTYPE),
            track=np.array(track_rows, dtype=TRACK_DTYPE),
        )
