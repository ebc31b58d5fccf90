import numpy as np
import pytest

from conftest import message
from pxwriter.config.assignment import CollectionAssignmentResolver
from pxwriter.errors import UnknownDetectorError
from pxwriter.io.event_record import EventRecordBuilder, HIT_DTYPES


def _builder(assignment=None, **kw):
    assignment = assignment or CollectionAssignmentResolver(["D1", "D2"]).resolve()
    return EventRecordBuilder(assignment, **kw)


def test_default_assignment_one_collection_two_hits():
    rec = _builder().build(1, [message("D1", (10, 20, 30.0)), message("D2", (11, 21, 31.0))])
    assert rec.run_number == 1
    assert rec.event_number == 1
    assert rec.event_type == 2
    assert len(rec.collections) == 1
    hits = rec.collections[0].hits
    assert len(hits) == 2
    assert list(hits["sensor_id"]) == [0, 1]
    assert list(hits["x"]) == [10, 11]
    assert list(hits["y"]) == [20, 21]
    assert rec.truth is None


def test_collections_follow_resolver_order():
    a = CollectionAssignmentResolver(
        ["D1", "D2"], detector_assignment=[["D2", "colB", "4"], ["D1", "colA", "2"]]
    ).resolve()
    rec = _builder(a).build(5, [message("D1", (1, 1, 1.0)), message("D2", (2, 2, 2.0), (3, 3, 3.0))])
    assert rec.collection_names == ["colB", "colA"]
    assert len(rec.collection("colB")) == 2
    assert list(rec.collection("colA").hits["sensor_id"]) == [2]


def test_empty_collections_are_still_allocated():
    a = CollectionAssignmentResolver(["D1", "D2"], detector_assignment=[["D1", "a"], ["D2", "b"]]).resolve()
    rec = _builder(a).build(1, [message("D1", (1, 1, 1.0))])
    assert rec.collection_names == ["a", "b"]
    assert len(rec.collection("b")) == 0


def test_pixel_types():
    simple = _builder(pixel_type=1).build(1, [message("D1", (1, 2, 3.0))])
    assert simple.collections[0].hits.dtype == HIT_DTYPES[1]
    assert "time" not in simple.collections[0].hits.dtype.names
    generic = _builder(pixel_type=2).build(1, [message("D1", (1, 2, 3.0), (4, 5, 6.0))])
    np.testing.assert_allclose(generic.collections[0].hits["time"], [0.0, 1.5])
    with pytest.raises(ValueError):
        _builder(pixel_type=3)


def test_unknown_detector_raises():
    b = _builder()
    with pytest.raises(UnknownDetectorError):
        b.build(1, [message("D1", (1, 1, 1.0)), message("D3", (2, 2, 2.0))])


def test_truth_disabled_emits_no_truth_collections():
    rec = _builder(dump_mc_truth=False).build(1, [message("D1", (1, 1, 1.0), track=3)])
    assert rec.truth is None


def test_truth_collections_link_by_index():
    b = _builder(dump_mc_truth=True)
    rec = b.build(
        2,
        [
            message("D1", (10, 10, 2.0), (11, 10, 6.0), track=7),
            message("D2", (20, 20, 4.0), track=7),
            message("D2", (90, 90, 1.0), track=8),
        ],
    )
    t = rec.truth
    assert t is not None
    assert len(t.sim_hit) == 4
    assert set(t.sim_hit["track_id"]) == {7, 8}
    # every raw-cluster row points at an existing hit
    for row in t.raw_cluster:
        hits = rec.collections[row["collection"]].hits
        assert 0 <= row["hit"] < len(hits)
    # D1 hits of track 7 form one cluster with the signal-weighted centre
    c0 = t.cluster[t.cluster["cluster"] == t.raw_cluster["cluster"][0]][0]
    assert c0["size"] == 2 and c0["sensor_id"] == 0
    assert c0["x"] == pytest.approx((10 * 2.0 + 11 * 6.0) / 8.0)
    assert len(t.cluster) == 3
    tracks = {int(r["track_id"]): r for r in t.track}
    assert tracks[7]["n_hits"] == 3 and tracks[7]["n_sensors"] == 2
    assert tracks[8]["n_hits"] == 1


def test_truth_enabled_without_particles_is_empty():
    rec = _builder(dump_mc_truth=True).build(1, [message("D1", (1, 1, 1.0))])
    for _, arr in rec.truth.items():
        assert len(arr) == 0
