import logging
import math
import xml.etree.ElementTree as ET

import numpy as np
import pytest

from conftest import make_registry
from pxwriter import units
from pxwriter.errors import OutputFileError
from pxwriter.geometry.detector import MagneticField, MagneticFieldType
from pxwriter.geometry.rotation import rotation_matrix_from_angles
from pxwriter.io.gear import GeometryExporter


def _write(tmp_path, registry, ids=None):
    ids = ids if ids is not None else {n: i for i, n in enumerate(registry.names)}
    path = GeometryExporter("EUTelescope", ids).write(tmp_path / "gear.xml", registry)
    return ET.parse(path).getroot()


def _bfield(root):
    b = root.find("BField")
    return [float(b.attrib[k]) for k in ("x", "y", "z")]


def test_no_field_is_zero(tmp_path):
    root = _write(tmp_path, make_registry(field=MagneticField(MagneticFieldType.NONE)))
    assert _bfield(root) == [0.0, 0.0, 0.0]
    assert root.find("global").attrib["detectorName"] == "EUTelescope"


def test_constant_field_in_tesla(tmp_path):
    field = MagneticField(MagneticFieldType.CONSTANT, B0=units.get([0.0, 0.0, 1.0], "T"))
    root = _write(tmp_path, make_registry(field=field))
    assert _bfield(root) == pytest.approx([0.0, 0.0, 1.0])


def test_unsupported_field_writes_zero_and_warns(tmp_path, caplog):
    field = MagneticField(MagneticFieldType.LINEAR, B0=units.get([0.0, 1.0, 0.0], "T"), gradient=np.eye(3))
    with caplog.at_level(logging.WARNING, logger="pxwriter"):
        root = _write(tmp_path, make_registry(field=field))
    assert _bfield(root) == [0.0, 0.0, 0.0]
    assert any("not handled by GEAR" in r.getMessage() for r in caplog.records)


def test_layers_in_registry_order(tmp_path):
    reg = make_registry(names=("tel0", "dut", "tel1"))
    root = _write(tmp_path, reg, ids={"tel0": 0, "dut": 6, "tel1": 1})
    assert root.find("detectors/detector/siplanesNumber").attrib["number"] == "3"
    layers = root.findall("detectors/detector/layers/layer")
    assert [l.find("ladder").attrib["ID"] for l in layers] == ["0", "6", "1"]
    assert [l.find("sensitive").attrib["ID"] for l in layers] == ["0", "6", "1"]
    assert [float(l.find("ladder").attrib["positionZ"]) for l in layers] == [0.0, 150.0, 300.0]


def test_sensitive_block(tmp_path):
    root = _write(tmp_path, make_registry(names=("D1",)))
    sens = root.find("detectors/detector/layers/layer/sensitive").attrib
    assert int(sens["npixelX"]) == 1152 and int(sens["npixelY"]) == 576
    assert float(sens["pitchX"]) == pytest.approx(0.0184)
    assert float(sens["sizeX"]) == pytest.approx(1152 * 0.0184)
    assert float(sens["thickness"]) == pytest.approx(0.05)
    assert float(sens["resolution"]) == pytest.approx(0.0184 / math.sqrt(12), rel=1e-5)
    assert [float(sens[f"rotation{i}"]) for i in range(1, 5)] == [1.0, 0.0, 0.0, 1.0]
    assert float(sens["radLength"]) == pytest.approx(93.65)


def test_ladder_rotation_is_negated(tmp_path):
    R = rotation_matrix_from_angles(np.radians(10.0), np.radians(30.0), np.radians(-45.0))
    reg = make_registry(names=("D1",), orientations=[R])
    ladder = _write(tmp_path, reg).find("detectors/detector/layers/layer/ladder").attrib
    assert float(ladder["rotationZY"]) == pytest.approx(-10.0, abs=1e-4)
    assert float(ladder["rotationZX"]) == pytest.approx(-30.0, abs=1e-4)
    assert float(ladder["rotationXY"]) == pytest.approx(45.0, abs=1e-4)

    # re-negating the exported angles rebuilds the orientation
    back = rotation_matrix_from_angles(*(-np.radians([float(ladder[k]) for k in
                                                        ("rotationZY", "rotationZX", "rotationXY")])))
    np.testing.assert_allclose(back, R, atol=1e-5)


def test_document_is_built_from_registry(registry):
    doc = GeometryExporter("tel", {"D1": 0, "D2": 1}).build_document(registry)
    assert doc.detector_name == "tel"
    assert [l.detector for l in doc.layers] == ["D1", "D2"]
    assert doc.layers[1].ladder.position == (0.0, 0.0, 150.0)


def test_unwritable_destination(tmp_path, registry):
    with pytest.raises(OutputFileError):
        GeometryExporter("tel", {}).write(tmp_path / "nope" / "gear.xml", registry)


def test_detector_names_with_double_dash_stay_well_formed(tmp_path):
    registry = make_registry(names=("tel--up", "dut---1"))
    root = _write(tmp_path, registry)
    assert len(root.findall(".//layer")) == 2
    text = (tmp_path / "gear.xml").read_text()
    assert "tel- -up" in text and "tel--up" not in text
