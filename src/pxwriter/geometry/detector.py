"""
pxwriter.geometry.detector

Read-only detector registry consumed by the writer.

All quantities are stored in the internal unit system of pxwriter.units
(mm, rad, internal field units). Factories taking configuration values
(from_cfg) perform the conversion from the units declared in the TOML.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from pxwriter import units
from pxwriter.errors import ConfigurationError
from pxwriter.geometry.rotation import is_rotation, rotation_matrix_from_angles


@dataclass(frozen=True)
class DetectorModel:
    """
    Pixel sensor model.

    n_pixels: (nx, ny)
    pixel_size: (px, py) pitch [mm]
    sensor_thickness: [mm]
    sensor_excess: dead material added on every side of the pixel matrix [mm]
    chip_thickness: readout chip bonded below the sensor [mm]
    """
    type: str
    n_pixels: Tuple[int, int]
    pixel_size: Tuple[float, float]
    sensor_thickness: float
    sensor_excess: float = 0.0
    chip_thickness: float = 0.0

    @property
    def matrix_size(self) -> np.ndarray:
        return np.array([self.n_pixels[0] * self.pixel_size[0],
                         self.n_pixels[1] * self.pixel_size[1]], dtype=np.float64)

    @property
    def sensor_size(self) -> np.ndarray:
        xy = self.matrix_size + 2.0 * self.sensor_excess
        return np.array([xy[0], xy[1], self.sensor_thickness], dtype=np.float64)

    @property
    def size(self) -> np.ndarray:
        s = self.sensor_size
        s[2] += self.chip_thickness
        return s


@dataclass(frozen=True)
class DetectorDescriptor:
    name: str
    model: DetectorModel
    position: np.ndarray     # (3,) [mm]
    orientation: np.ndarray  # (3,3) rotation matrix, local -> global

    @property
    def type(self) -> str:
        return self.model.type


class MagneticFieldType(str, Enum):
    NONE = "none"
    CONSTANT = "constant"
    LINEAR = "linear"
    CUSTOM = "custom"


@dataclass(frozen=True)
class MagneticField:
    """
    Global magnetic field.

    CONSTANT: B(x) = B0
    LINEAR:   B(x) = B0 + G @ x
    CUSTOM:   B(x) = fn(x)
    """
    type: MagneticFieldType = MagneticFieldType.NONE
    B0: np.ndarray = field(default_factory=lambda: np.zeros(3))
    gradient: Optional[np.ndarray] = None
    fn: Optional[Callable[[np.ndarray], np.ndarray]] = None

    def at(self, point) -> np.ndarray:
        x = np.asarray(point, dtype=np.float64)
        if self.type is MagneticFieldType.NONE:
            return np.zeros(3)
        if self.type is MagneticFieldType.CONSTANT:
            return np.array(self.B0, dtype=np.float64)
        if self.type is MagneticFieldType.LINEAR:
            G = self.gradient if self.gradient is not None else np.zeros((3, 3))
            return np.asarray(self.B0, dtype=np.float64) + G @ x
        if self.fn is None:
            raise ValueError("Custom magnetic field requires a field function")
        return np.asarray(self.fn(x), dtype=np.float64)


def _orientation_from_cfg(orientation) -> np.ndarray:
    arr = np.asarray(orientation, dtype=np.float64)
    if arr.shape == (3,):
        # xyz angles in degrees
        a, b, g = (units.get(float(v), "deg") for v in arr)
        return rotation_matrix_from_angles(a, b, g)
    if arr.shape == (3, 3):
        if not is_rotation(arr, atol=1e-6):
            raise ConfigurationError("Orientation matrix is not a proper rotation")
        return arr
    raise ConfigurationError(f"Orientation must be 3 angles or a 3x3 matrix, got shape {arr.shape}")


class GeometryRegistry:
    """
    Ordered, immutable collection of detectors plus the global field.
    """

    def __init__(self, detectors: Iterable[DetectorDescriptor], magnetic_field: Optional[MagneticField] = None):
        self._detectors: Tuple[DetectorDescriptor, ...] = tuple(detectors)
        self._by_name: Dict[str, DetectorDescriptor] = {}
        for det in self._detectors:
            if det.name in self._by_name:
                raise ConfigurationError(f"Duplicate detector name '{det.name}' in geometry")
            self._by_name[det.name] = det
        self._field = magnetic_field or MagneticField()

    @classmethod
    def from_cfg(cls, detectors_cfg: Sequence, field_cfg=None) -> "GeometryRegistry":
        """
        Build the registry from [[detectors]] and [field] config sections
        (pxwriter.config.schemas.DetectorCfg / FieldCfg).
        """
        dets: List[DetectorDescriptor] = []
        for d in detectors_cfg:
            model = DetectorModel(
                type=d.type,
                n_pixels=(int(d.number_of_pixels[0]), int(d.number_of_pixels[1])),
                pixel_size=(units.get(float(d.pixel_size[0]), "um"), units.get(float(d.pixel_size[1]), "um")),
                sensor_thickness=units.get(float(d.sensor_thickness), "um"),
                sensor_excess=units.get(float(d.sensor_excess), "um"),
                chip_thickness=units.get(float(d.chip_thickness), "um"),
            )
            dets.append(DetectorDescriptor(
                name=d.name,
                model=model,
                position=np.asarray(d.position, dtype=np.float64) * units.factor("mm"),
                orientation=_orientation_from_cfg(d.orientation),
            ))

        mf = MagneticField()
        if field_cfg is not None:
            ftype = MagneticFieldType(field_cfg.type)
            if ftype is MagneticFieldType.CUSTOM:
                raise ConfigurationError("Custom magnetic fields cannot be declared in the config file")
            mf = MagneticField(
                type=ftype,
                B0=units.get(list(field_cfg.vector), "T"),
                gradient=(units.get(list(field_cfg.gradient), "T") / units.factor("mm")
                          if field_cfg.gradient is not None else None),
            )
        return cls(dets, mf)

    def __iter__(self) -> Iterator[DetectorDescriptor]:
        return iter(self._detectors)

    def __len__(self) -> int:
        return len(self._detectors)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    @property
    def detectors(self) -> Tuple[DetectorDescriptor, ...]:
        return self._detectors

    @property
    def names(self) -> List[str]:
        return [d.name for d in self._detectors]

    def get(self, name: str) -> DetectorDescriptor:
        return self._by_name[name]

    @property
    def magnetic_field_type(self) -> MagneticFieldType:
        return self._field.type

    def magnetic_field(self, point) -> np.ndarray:
        return self._field.at(point)
