import logging

import pytest

from pxwriter.config.assignment import CollectionAssignmentResolver
from pxwriter.config.schemas import DEFAULT_COLLECTION, WriterCfg
from pxwriter.errors import ConfigurationError, UnknownDetectorError


def test_default_collection_covers_all_detectors():
    a = CollectionAssignmentResolver(["D1", "D2"]).resolve()
    assert a.source == "default"
    assert a.detector_to_collection == {"D1": DEFAULT_COLLECTION, "D2": DEFAULT_COLLECTION}
    assert a.collection_names == [DEFAULT_COLLECTION]
    assert a.detector_to_id == {"D1": 0, "D2": 1}


def test_short_form():
    a = CollectionAssignmentResolver(["D1", "D2", "D3"], output_collection_name="tel").resolve()
    assert a.source == "short"
    assert set(a.detector_to_collection.values()) == {"tel"}
    assert a.collection_names == ["tel"]


def test_long_form_order_and_ids():
    table = [["D2", "colB", "7"], ["D1", "colA", "3"], ["D3", "colB", "5"]]
    a = CollectionAssignmentResolver(["D1", "D2", "D3"], detector_assignment=table).resolve()
    assert a.source == "long"
    assert a.collection_names == ["colB", "colA"]
    assert a.detector_to_collection == {"D1": "colA", "D2": "colB", "D3": "colB"}
    assert a.detector_to_id == {"D1": 3, "D2": 7, "D3": 5}


def test_long_form_without_sensor_ids_uses_row_index():
    a = CollectionAssignmentResolver(["D1", "D2"], detector_assignment=[["D1", "a"], ["D2", "b"]]).resolve()
    assert a.detector_to_id == {"D1": 0, "D2": 1}


def test_both_forms_prefer_short_and_warn_once(caplog):
    cfg = WriterCfg(
        output_collection_name="tel",
        detector_assignment=[["D1", "colA", 0], ["D2", "colB", 1]],
    )
    resolver = CollectionAssignmentResolver.from_cfg(cfg, ["D1", "D2"])
    with caplog.at_level(logging.WARNING, logger="pxwriter"):
        a = resolver.resolve()
        resolver.resolve()
    assert a.source == "short"
    assert a.detector_to_collection == {"D1": "tel", "D2": "tel"}
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1


@pytest.mark.parametrize(
    "table",
    [
        [["D1", "a", "0"], ["D9", "a", "1"]],  # unknown detector
        [["D1", "a", "0"]],                    # D2 left unassigned
        [["D1", "a", "0"], ["D1", "b", "1"]],  # assigned twice
        [["D1", "a", "0"], ["D2", "b", "0"]],  # duplicate sensor id
        [["D1", "a", "x"], ["D2", "b", "1"]],  # non-integer sensor id
        [["D1"], ["D2", "b"]],                 # malformed row
        [["D1", "a/b"], ["D2", "b"]],          # collection name not usable as dataset name
    ],
)
def test_long_form_errors(table):
    with pytest.raises(ConfigurationError):
        CollectionAssignmentResolver(["D1", "D2"], detector_assignment=table).resolve()


def test_unknown_detector_lookup():
    a = CollectionAssignmentResolver(["D1"]).resolve()
    with pytest.raises(UnknownDetectorError):
        a.collection_for("D3")
