"""
pxwriter.units

Minimal units service. Quantities are held internally in a fixed system

  length  -> mm
  time    -> ns
  energy  -> MeV
  angle   -> rad
  charge  -> e

Magnetic field therefore has internal unit MeV*ns/(e*mm^2), in which
1 T = 1e-3.

Use get() to bring a value into the internal system and convert() to take it
back out, e.g. units.convert(position_x, "mm") for export.
"""
from __future__ import annotations

import math
from typing import Dict

import numpy as np

UNITS: Dict[str, float] = {
    # length
    "nm": 1e-6,
    "um": 1e-3,
    "mm": 1.0,
    "cm": 10.0,
    "m": 1e3,
    # time
    "ps": 1e-3,
    "ns": 1.0,
    "us": 1e3,
    "ms": 1e6,
    "s": 1e9,
    # energy
    "eV": 1e-6,
    "keV": 1e-3,
    "MeV": 1.0,
    "GeV": 1e3,
    # angle
    "rad": 1.0,
    "mrad": 1e-3,
    "deg": math.pi / 180.0,
    # charge
    "e": 1.0,
    # magnetic field
    "T": 1e-3,
    "mT": 1e-6,
}


def factor(unit: str) -> float:
    try:
        return UNITS[unit]
    except KeyError:
        raise ValueError(f"Unknown unit '{unit}'") from None


def get(value, unit: str):
    """Convert value given in `unit` to the internal unit system."""
    f = factor(unit)
    if isinstance(value, (list, tuple)):
        return np.asarray(value, dtype=np.float64) * f
    return value * f


def convert(value, unit: str):
    """Convert value from the internal unit system to `unit`."""
    f = factor(unit)
    if isinstance(value, (list, tuple)):
        return np.asarray(value, dtype=np.float64) / f
    return value / f
