"""
pxwriter.io.gear

GEAR geometry export (SiPlanes, TelescopeWithoutDUT).

The document is built once from the detector registry, then serialized as
XML text. Every number leaves through pxwriter.units.convert in the units
GEAR declares: mm for lengths, deg for angles, T for the field.
"""
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Tuple
from xml.sax.saxutils import escape

import numpy as np

from pxwriter import units
from pxwriter.errors import OutputFileError
from pxwriter.geometry.detector import GeometryRegistry, MagneticFieldType
from pxwriter.geometry.rotation import rotation_angles_from_matrix
from pxwriter.utils.logger import logger

GEAR_SCHEMA_VERSION = "1.0"
RAD_LENGTH = 93.65  # silicon, mm
SITYPE = "TelescopeWithoutDUT"

Vec3 = Tuple[float, float, float]


@dataclass(frozen=True)
class FieldDescriptor:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass(frozen=True)
class LadderGeometry:
    id: int
    position: Vec3  # mm
    rotation: Vec3  # deg: ZY, ZX, XY
    size: Vec3      # mm: x, y, thickness
    rad_length: float = RAD_LENGTH


@dataclass(frozen=True)
class SensitiveGeometry:
    id: int
    position: Vec3              # mm
    size: Vec3                  # mm: pixel matrix x, y, sensor thickness
    n_pixels: Tuple[int, int]
    pitch: Tuple[float, float]  # mm
    resolution: float           # mm
    rotation: Tuple[float, float, float, float] = (1.0, 0.0, 0.0, 1.0)
    rad_length: float = RAD_LENGTH


@dataclass(frozen=True)
class LayerGeometry:
    detector: str
    detector_type: str
    ladder: LadderGeometry
    sensitive: SensitiveGeometry


@dataclass(frozen=True)
class GeometryDocument:
    detector_name: str
    field: FieldDescriptor
    layers: Tuple[LayerGeometry, ...]


def _vec(v, unit: str) -> Vec3:
    a = np.asarray(v, dtype=np.float64)
    return tuple(float(units.convert(x, unit)) for x in a[:3])


def _fmt(v: float) -> str:
    # + 0.0 folds -0.0 into 0.0
    return f"{float(v) + 0.0:.6g}"


def _attr(s: str) -> str:
    return escape(str(s), {'"': "&quot;"})


def _comment(s: str) -> str:
    # "--" is not allowed inside an XML comment
    s = str(s)
    while "--" in s:
        s = s.replace("--", "- -")
    return s


class GeometryExporter:
    """
    Builds and writes the GEAR description of the telescope.

    sensor_ids maps detector names to the ladder/sensitive IDs; it must be the
    same mapping used for the event stream so hits and layers line up.
    """

    def __init__(self, detector_name: str, sensor_ids: Mapping[str, int]):
        self.detector_name = detector_name
        self.sensor_ids: Dict[str, int] = dict(sensor_ids)

    # -- document -----------------------------------------------------------

    @staticmethod
    def field_descriptor(registry: GeometryRegistry) -> FieldDescriptor:
        ftype = registry.magnetic_field_type
        if ftype is MagneticFieldType.CONSTANT:
            bx, by, bz = _vec(registry.magnetic_field((0.0, 0.0, 0.0)), "T")
            return FieldDescriptor(bx, by, bz)
        if ftype is not MagneticFieldType.NONE:
            logger.warning("Field type '%s' not handled by GEAR geometry. Writing null magnetic field instead.",
                           ftype.value)
        return FieldDescriptor()

    def build_document(self, registry: GeometryRegistry) -> GeometryDocument:
        layers: List[LayerGeometry] = []
        for det in registry:
            model = det.model
            sid = self.sensor_ids.get(det.name, len(layers))
            position = _vec(det.position, "mm")

            # GEAR rotates the opposite way round
            angles = -rotation_angles_from_matrix(det.orientation)
            rotation = _vec(angles, "deg")

            pitch = (float(units.convert(model.pixel_size[0], "mm")), float(units.convert(model.pixel_size[1], "mm")))
            matrix = model.matrix_size
            ladder = LadderGeometry(id=sid, position=position, rotation=rotation, size=_vec(model.size, "mm"))
            sensitive = SensitiveGeometry(
                id=sid,
                position=position,
                size=_vec((matrix[0], matrix[1], model.sensor_size[2]), "mm"),
                n_pixels=(int(model.n_pixels[0]), int(model.n_pixels[1])),
                pitch=pitch,
                resolution=float(units.convert(model.pixel_size[0] / np.sqrt(12.0), "mm")),
            )
            layers.append(LayerGeometry(det.name, det.type, ladder, sensitive))

        return GeometryDocument(
            detector_name=self.detector_name,
            field=self.field_descriptor(registry),
            layers=tuple(layers),
        )

    # -- serialization --------------------------------------------------------

    @staticmethod
    def to_xml(doc: GeometryDocument) -> str:
        out: List[str] = [
            '<?xml version="1.0" encoding="utf-8"?>',
            '<!-- ?xml-stylesheet type="text/xsl" href="https://cern.ch/allpix-squared/"? -->',
            f"<!-- pxwriter GEAR schema {GEAR_SCHEMA_VERSION} -->",
            "<gear>",
            f'  <global detectorName="{_attr(doc.detector_name)}"/>',
        ]
        f = doc.field
        if f == FieldDescriptor():
            out.append('  <BField type="ConstantBField" x="0.0" y="0.0" z="0.0"/>')
        else:
            out.append(f'  <BField type="ConstantBField" x="{_fmt(f.x)}" y="{_fmt(f.y)}" z="{_fmt(f.z)}"/>')

        out += [
            "  <detectors>",
            '    <detector name="SiPlanes" geartype="SiPlanesParameters">',
            f'      <siplanesType type="{SITYPE}"/>',
            f'      <siplanesNumber number="{len(doc.layers)}"/>',
            '      <siplanesID ID="0"/>',
            "      <layers>",
        ]
        for layer in doc.layers:
            ld, sn = layer.ladder, layer.sensitive
            out += [
                f"      <!-- Allpix Squared Detector: {_comment(layer.detector)} - type: {_comment(layer.detector_type)} -->",
                "        <layer>",
                f'          <ladder ID="{ld.id}"',
                f'            positionX="{_fmt(ld.position[0])}"\tpositionY="{_fmt(ld.position[1])}"'
                f'\tpositionZ="{_fmt(ld.position[2])}"',
                f'            rotationZY="{_fmt(ld.rotation[0])}"     rotationZX="{_fmt(ld.rotation[1])}"'
                f'   rotationXY="{_fmt(ld.rotation[2])}"',
                f'            sizeX="{_fmt(ld.size[0])}"\tsizeY="{_fmt(ld.size[1])}"\tthickness="{_fmt(ld.size[2])}"',
                f'            radLength="{_fmt(ld.rad_length)}"',
                "            />",
                f'          <sensitive ID="{sn.id}"',
                f'            positionX="{_fmt(sn.position[0])}"\tpositionY="{_fmt(sn.position[1])}"'
                f'\tpositionZ="{_fmt(sn.position[2])}"',
                f'            sizeX="{_fmt(sn.size[0])}"\tsizeY="{_fmt(sn.size[1])}"\tthickness="{_fmt(sn.size[2])}"',
                f'            npixelX="{sn.n_pixels[0]}"\tnpixelY="{sn.n_pixels[1]}"',
                f'            pitchX="{_fmt(sn.pitch[0])}"\tpitchY="{_fmt(sn.pitch[1])}"'
                f'\tresolution="{_fmt(sn.resolution)}"',
                f'            rotation1="{sn.rotation[0]:.1f}"\trotation2="{sn.rotation[1]:.1f}"',
                f'            rotation3="{sn.rotation[2]:.1f}"\trotation4="{sn.rotation[3]:.1f}"',
                f'            radLength="{_fmt(sn.rad_length)}"',
                "            />",
                "        </layer>",
            ]
        out += [
            "      </layers>",
            "    </detector>",
            "  </detectors>",
            "</gear>",
        ]
        return "\n".join(out) + "\n"

    def write(self, path: str | Path, registry: GeometryRegistry) -> Path:
        """Build the document and write it to `path` (truncating)."""
        path = Path(path)
        doc = self.build_document(registry)
        text = self.to_xml(doc)
        try:
            with open(path, "w", encoding="utf-8") as fh:
                fh.write(text)
        except OSError as exc:
            raise OutputFileError(f"Cannot write to GEAR geometry file {path}: {exc}") from exc
        return path
