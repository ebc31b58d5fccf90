from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional
import json
import threading

import h5py
import numpy as np

from pxwriter.config.load import json_dumps
from pxwriter.errors import LifecycleError, OutputFileError, PxWriterError
from pxwriter.io.event_record import HitCollection, OutputRecord, TruthCollections, TRUTH_NAMES
from pxwriter.utils.logger import logger

FORMAT_VERSION = "1.0"
SOFTWARE = "pxwriter 0.1.0"

_STAGING_PREFIX = ".staging_"


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    OPEN = "open"
    CLOSED = "closed"


def _event_key(event_number: int) -> str:
    return f"{int(event_number):09d}"


class RunFileSession:
    """
    Owns the HDF5 run/event file for one run.

    Layout:

    /                         attrs: format_version, created_utc, software,
                                     run_number, detector_name, n_events, config_text
    /events/<event:09d>       attrs: run_number, event_number, event_type, collections (JSON list)
        collections/<name>    structured hit array, attrs: pixel_type
        truth/<name>          cluster | raw_cluster | sim_hit | track (only if exported)

    The session is a monitor: open, append and close are serialized under one
    lock, so producers on several threads may append concurrently. Each event
    is written to a staging group and renamed into place once complete, so a
    failed append leaves no partial event behind.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._state = SessionState.UNINITIALIZED
        self._file: Optional[h5py.File] = None
        self._events: Optional[h5py.Group] = None
        self._count = 0
        self.path: Optional[Path] = None
        self.run_number: Optional[int] = None
        self.detector_name: Optional[str] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def events_written(self) -> int:
        return self._count

    def open(self, path: str | Path, run_number: int, detector_name: str, *, config_text: Optional[str] = None) -> None:
        """Create/truncate the output file and write the run header."""
        with self._lock:
            if self._state is not SessionState.UNINITIALIZED:
                raise LifecycleError(f"Cannot open run file: session is already {self._state.value}")

            path = Path(path)
            try:
                f = h5py.File(path, "w")
            except OSError as exc:
                raise OutputFileError(f"Cannot create output file {path}: {exc}") from exc

            f.attrs["format_version"] = FORMAT_VERSION
            f.attrs["created_utc"] = datetime.now(timezone.utc).isoformat()
            f.attrs["software"] = SOFTWARE
            f.attrs["run_number"] = int(run_number)
            f.attrs["detector_name"] = str(detector_name)
            f.attrs["n_events"] = 0
            if config_text is not None:
                f.attrs["config_text"] = config_text
            self._events = f.create_group("events")
            f.flush()

            self._file = f
            self.path = path
            self.run_number = int(run_number)
            self.detector_name = str(detector_name)
            self._state = SessionState.OPEN
            logger.debug("Opened run file %s (run %d, detector %s)", path, run_number, detector_name)

    def append(self, record: OutputRecord) -> None:
        """Write one event, flush, and bump the event count."""
        with self._lock:
            if self._state is not SessionState.OPEN:
                raise LifecycleError(f"Cannot write event {record.event_number}: session is {self._state.value}")

            key = _event_key(record.event_number)
            if key in self._events:
                raise LifecycleError(f"Event {record.event_number} has already been written")

            staging = _STAGING_PREFIX + key
            try:
                self._write_event(self._events.create_group(staging), record)
                self._events.move(staging, key)
                self._file.attrs["n_events"] = self._count + 1
                self._file.flush()
            except Exception as exc:
                self._discard(staging, key)
                if isinstance(exc, PxWriterError):
                    raise
                raise OutputFileError(f"Failed to write event {record.event_number} to {self.path}: {exc}") from exc

            self._count += 1

    def _discard(self, staging: str, key: str) -> None:
        for name in (staging, key):
            try:
                if name in self._events:
                    del self._events[name]
            except (OSError, KeyError, RuntimeError) as exc:
                logger.error("Could not remove partial event group %s: %s", name, exc)
        try:
            self._file.attrs["n_events"] = self._count
        except (OSError, RuntimeError) as exc:
            logger.error("Could not restore n_events on %s: %s", self.path, exc)

    @staticmethod
    def _write_event(grp: h5py.Group, record: OutputRecord) -> None:
        grp.attrs["run_number"] = int(record.run_number)
        grp.attrs["event_number"] = int(record.event_number)
        grp.attrs["event_type"] = int(record.event_type)
        grp.attrs["collections"] = json_dumps(record.collection_names)

        cols = grp.create_group("collections")
        for col in record.collections:
            dset = cols.create_dataset(col.name, data=col.hits)
            dset.attrs["pixel_type"] = int(col.pixel_type)

        if record.truth is not None:
            tgrp = grp.create_group("truth")
            for name, arr in record.truth.items():
                tgrp.create_dataset(name, data=arr)

    def close(self) -> int:
        """
        Flush and close the file; return the number of events written.

        Closing an already closed session is a no-op returning the same count.
        """
        with self._lock:
            if self._state is SessionState.CLOSED:
                return self._count
            if self._state is SessionState.UNINITIALIZED:
                raise LifecycleError("Cannot close run file: session was never opened")

            try:
                self._file.attrs["n_events"] = self._count
                self._file.flush()
            finally:
                self._file.close()
                self._file = None
                self._events = None
                self._state = SessionState.CLOSED
            return self._count


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RunHeader:
    run_number: int
    detector_name: str
    n_events: int
    format_version: str
    created_utc: str


def _as_str(v) -> str:
    return v.decode() if isinstance(v, bytes) else str(v)


def read_run_header(path: str | Path) -> RunHeader:
    with h5py.File(str(path), "r") as f:
        return RunHeader(
            run_number=int(f.attrs["run_number"]),
            detector_name=_as_str(f.attrs["detector_name"]),
            n_events=int(f.attrs["n_events"]),
            format_version=_as_str(f.attrs["format_version"]),
            created_utc=_as_str(f.attrs["created_utc"]),
        )


def _read_event_group(grp: h5py.Group) -> OutputRecord:
    names = json.loads(_as_str(grp.attrs["collections"]))
    cols = grp["collections"]
    collections = [
        HitCollection(name=n, pixel_type=int(cols[n].attrs["pixel_type"]), hits=np.array(cols[n][...]))
        for n in names
    ]
    truth = None
    if "truth" in grp:
        t = grp["truth"]
        truth = TruthCollections(**{n: np.array(t[n][...]) for n in TRUTH_NAMES})
    return OutputRecord(
        run_number=int(grp.attrs["run_number"]),
        event_number=int(grp.attrs["event_number"]),
        event_type=int(grp.attrs["event_type"]),
        collections=collections,
        truth=truth,
    )


def read_event(path: str | Path, event_number: int) -> OutputRecord:
    path = str(path)
    with h5py.File(path, "r") as f:
        key = _event_key(event_number)
        if key not in f["events"]:
            raise KeyError(f"Event {event_number} not found in {path}")
        return _read_event_group(f["events"][key])


def iter_events(path: str | Path) -> Iterator[OutputRecord]:
    """Yield all committed events in event-number order."""
    with h5py.File(str(path), "r") as f:
        events = f["events"]
        for key in sorted((k for k in events.keys() if not k.startswith(_STAGING_PREFIX)), key=int):
            yield _read_event_group(events[key])
