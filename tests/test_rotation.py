import numpy as np
import pytest

from pxwriter.geometry.rotation import is_rotation, rotation_angles_from_matrix, rotation_matrix_from_angles


def test_identity():
    np.testing.assert_allclose(rotation_angles_from_matrix(np.eye(3)), [0.0, 0.0, 0.0], atol=1e-12)


def test_single_axis_angles():
    a = np.radians(30.0)
    np.testing.assert_allclose(rotation_angles_from_matrix(rotation_matrix_from_angles(a, 0, 0)), [a, 0, 0], atol=1e-12)
    np.testing.assert_allclose(rotation_angles_from_matrix(rotation_matrix_from_angles(0, a, 0)), [0, a, 0], atol=1e-12)
    np.testing.assert_allclose(rotation_angles_from_matrix(rotation_matrix_from_angles(0, 0, a)), [0, 0, a], atol=1e-12)


def test_negated_angles_reconstruct_orientation():
    rng = np.random.default_rng(7)
    for _ in range(200):
        alpha, gamma = rng.uniform(-np.pi, np.pi, size=2)
        beta = rng.uniform(-np.pi / 2, np.pi / 2)
        R = rotation_matrix_from_angles(alpha, beta, gamma)
        assert is_rotation(R)
        exported = -rotation_angles_from_matrix(R)
        np.testing.assert_allclose(rotation_matrix_from_angles(*(-exported)), R, atol=1e-9)


@pytest.mark.parametrize("beta", [np.pi / 2, -np.pi / 2])
def test_gimbal_lock(beta):
    R = rotation_matrix_from_angles(0.4, beta, -1.1)
    angles = rotation_angles_from_matrix(R)
    assert angles[0] == 0.0
    np.testing.assert_allclose(rotation_matrix_from_angles(*angles), R, atol=1e-9)


def test_bad_shape():
    with pytest.raises(ValueError):
        rotation_angles_from_matrix(np.eye(2))
