# src/pxwriter/config/assignment.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Sequence

from pxwriter.config.schemas import DEFAULT_COLLECTION
from pxwriter.errors import ConfigurationError, UnknownDetectorError
from pxwriter.utils.logger import logger

AssignmentSource = Literal["short", "long", "default"]


@dataclass(frozen=True)
class CollectionAssignment:
    """
    Resolved detector -> output collection map.

    collection_names holds the distinct collection names in first-appearance
    order; output records allocate one hit buffer per entry, in this order.
    """
    detector_to_collection: Dict[str, str]
    detector_to_id: Dict[str, int]
    collection_names: List[str]
    source: AssignmentSource = "default"

    def collection_for(self, detector: str) -> str:
        try:
            return self.detector_to_collection[detector]
        except KeyError:
            raise UnknownDetectorError(detector) from None

    def sensor_id_for(self, detector: str) -> int:
        try:
            return self.detector_to_id[detector]
        except KeyError:
            raise UnknownDetectorError(detector) from None

    def collection_index(self, collection: str) -> int:
        return self.collection_names.index(collection)


def _check_name(collection: str) -> str:
    if not collection or "/" in collection or collection in (".", ".."):
        raise ConfigurationError(f"Invalid output collection name '{collection}'")
    return collection


def _uniform(detectors: Sequence[str], collection: str, source: AssignmentSource) -> CollectionAssignment:
    _check_name(collection)
    return CollectionAssignment(
        detector_to_collection={d: collection for d in detectors},
        detector_to_id={d: i for i, d in enumerate(detectors)},
        collection_names=[collection] if detectors else [],
        source=source,
    )


def _from_table(detectors: Sequence[str], table: Sequence[Sequence[str]]) -> CollectionAssignment:
    known = set(detectors)
    det_to_col: Dict[str, str] = {}
    det_to_id: Dict[str, int] = {}
    names: List[str] = []

    for i, row in enumerate(table):
        if len(row) not in (2, 3):
            raise ConfigurationError(
                f"detector_assignment entry {i} must be [detector, collection] or "
                f"[detector, collection, sensor_id], got {list(row)}"
            )
        det, col = str(row[0]), _check_name(str(row[1]))
        if det not in known:
            raise ConfigurationError(f"detector_assignment names unknown detector '{det}'")
        if det in det_to_col:
            raise ConfigurationError(f"Detector '{det}' is assigned more than once")
        if len(row) == 3:
            try:
                sid = int(row[2])
            except ValueError:
                raise ConfigurationError(f"Sensor ID '{row[2]}' of detector '{det}' is not an integer") from None
        else:
            sid = i
        if sid in det_to_id.values():
            raise ConfigurationError(f"Sensor ID {sid} is assigned to more than one detector")

        det_to_col[det] = col
        det_to_id[det] = sid
        if col not in names:
            names.append(col)

    missing = [d for d in detectors if d not in det_to_col]
    if missing:
        raise ConfigurationError(f"detector_assignment does not cover detector(s): {', '.join(missing)}")

    return CollectionAssignment(det_to_col, det_to_id, names, source="long")


@dataclass
class CollectionAssignmentResolver:
    """
    Resolves the two configuration styles into one CollectionAssignment.

    short form: output_collection_name, one collection for all detectors
    long form:  detector_assignment, [detector, collection(, sensor_id)] rows

    Both present: the short form wins and a warning is logged.
    Neither present: every detector goes to DEFAULT_COLLECTION.
    """
    detectors: Sequence[str]
    output_collection_name: Optional[str] = None
    detector_assignment: Optional[Sequence[Sequence[str]]] = None
    default_collection: str = DEFAULT_COLLECTION
    _resolved: Optional[CollectionAssignment] = field(default=None, init=False, repr=False)

    @classmethod
    def from_cfg(cls, writer_cfg, detectors: Sequence[str]) -> "CollectionAssignmentResolver":
        return cls(
            detectors=list(detectors),
            output_collection_name=writer_cfg.output_collection_name,
            detector_assignment=writer_cfg.detector_assignment,
        )

    def resolve(self) -> CollectionAssignment:
        if self._resolved is not None:
            return self._resolved

        has_short = self.output_collection_name is not None
        has_long = self.detector_assignment is not None

        if has_short and has_long:
            logger.warning(
                "Both output_collection_name and detector_assignment are set; "
                "using output_collection_name '%s' and ignoring detector_assignment",
                self.output_collection_name,
            )
            has_long = False

        if has_short:
            result = _uniform(self.detectors, self.output_collection_name, "short")
        elif has_long:
            result = _from_table(self.detectors, self.detector_assignment)
        else:
            result = _uniform(self.detectors, self.default_collection, "default")

        logger.debug("Collection assignment (%s): %s", result.source, result.detector_to_collection)
        self._resolved = result
        return result
