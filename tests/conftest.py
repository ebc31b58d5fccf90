import numpy as np
import pytest

from pxwriter import units
from pxwriter.geometry.detector import DetectorDescriptor, DetectorModel, GeometryRegistry, MagneticField
from pxwriter.physics.hits import MCParticle, PixelHit, PixelHitMessage

MIMOSA = DetectorModel(
    type="mimosa26",
    n_pixels=(1152, 576),
    pixel_size=(units.get(18.4, "um"), units.get(18.4, "um")),
    sensor_thickness=units.get(50.0, "um"),
)


def make_registry(names=("D1", "D2"), field=None, orientations=None):
    dets = []
    for i, name in enumerate(names):
        R = np.eye(3) if orientations is None else orientations[i]
        dets.append(DetectorDescriptor(name, MIMOSA, np.array([0.0, 0.0, 150.0 * i]), R))
    return GeometryRegistry(dets, field or MagneticField())


def message(detector, *pixels, track=None):
    hits = []
    for k, (x, y, s) in enumerate(pixels):
        particles = [] if track is None else [MCParticle(track_id=track, pdg=11)]
        hits.append(PixelHit(detector, (x, y), s, time_ns=1.5 * k, mc_particles=particles))
    return PixelHitMessage(detector, hits)


@pytest.fixture
def registry():
    return make_registry()
