from __future__ import annotations
import numpy as np

# Below this |cos(beta)| the ZY and XY angles are degenerate
_GIMBAL_EPS = 1e-12


def _as_matrix(R) -> np.ndarray:
    M = np.asarray(R, dtype=np.float64)
    if M.shape != (3, 3):
        raise ValueError(f"Rotation matrix must have shape (3, 3), got {M.shape}")
    return M


def rotation_matrix_from_angles(alpha: float, beta: float, gamma: float) -> np.ndarray:
    """
    Build R = Rz(gamma) @ Ry(beta) @ Rx(alpha).

    alpha rotates in the ZY plane (about x), beta in the ZX plane (about y),
    gamma in the XY plane (about z). Angles in radians.
    """
    ca, sa = np.cos(alpha), np.sin(alpha)
    cb, sb = np.cos(beta), np.sin(beta)
    cg, sg = np.cos(gamma), np.sin(gamma)
    Rx = np.array([[1.0, 0.0, 0.0], [0.0, ca, -sa], [0.0, sa, ca]])
    Ry = np.array([[cb, 0.0, sb], [0.0, 1.0, 0.0], [-sb, 0.0, cb]])
    Rz = np.array([[cg, -sg, 0.0], [sg, cg, 0.0], [0.0, 0.0, 1.0]])
    return Rz @ Ry @ Rx


def rotation_angles_from_matrix(R) -> np.ndarray:
    """
    Closed-form inverse of rotation_matrix_from_angles.

    Returns
    -------
    np.ndarray, shape (3,)
        [alpha (ZY), beta (ZX), gamma (XY)] in radians, with beta in [-pi/2, pi/2].
        At gimbal lock alpha is fixed to 0 and the remaining freedom goes to gamma.
    """
    M = _as_matrix(R)
    beta = np.arctan2(-M[2, 0], np.hypot(M[2, 1], M[2, 2]))
    if np.hypot(M[0, 0], M[1, 0]) < _GIMBAL_EPS:
        alpha = 0.0
        gamma = np.arctan2(-M[0, 1], M[1, 1])
    else:
        alpha = np.arctan2(M[2, 1], M[2, 2])
        gamma = np.arctan2(M[1, 0], M[0, 0])
    return np.array([alpha, beta, gamma], dtype=np.float64)


def is_rotation(R, atol: float = 1e-9) -> bool:
    M = _as_matrix(R)
    return bool(np.allclose(M @ M.T, np.eye(3), atol=atol) and np.isclose(np.linalg.det(M), 1.0, atol=atol))
