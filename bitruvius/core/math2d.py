"""2D vector, angle and affine-transform helpers shared by FK and the IK solvers.

Angles are radians. Points and vectors are ``float64`` numpy arrays of shape (2,).
Affine transforms are 3x3 matrices acting on column vectors ``[x, y, 1]``.
"""

import math
from typing import Sequence, Union
import numpy as np

from .errors import SingularMatrixError


TWO_PI = 2.0 * math.pi

PointLike = Union[np.ndarray, Sequence[float]]


def vec2(p: PointLike) -> np.ndarray:
    """Copy any 2-sequence into a float64 vector."""
    return np.array([float(p[0]), float(p[1])], dtype=np.float64)


def length(v: np.ndarray) -> float:
    return math.hypot(v[0], v[1])


def distance(a: np.ndarray, b: np.ndarray) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def heading(v: np.ndarray) -> float:
    """Direction angle of a vector measured from +X."""
    return math.atan2(v[1], v[0])


def from_angle(angle: float, magnitude: float = 1.0) -> np.ndarray:
    return np.array([math.cos(angle) * magnitude, math.sin(angle) * magnitude])


def rotate(v: np.ndarray, angle: float) -> np.ndarray:
    """Rotate a vector counter-clockwise (in +X/+Y axes) by ``angle``."""
    c = math.cos(angle)
    s = math.sin(angle)
    return np.array([v[0] * c - v[1] * s, v[0] * s + v[1] * c])


def cross2(a: np.ndarray, b: np.ndarray) -> float:
    """Z component of the 3D cross product of two planar vectors."""
    return float(a[0] * b[1] - a[1] * b[0])


def signed_angle(a: np.ndarray, b: np.ndarray) -> float:
    """Angle that rotates ``a`` onto ``b``, in (-pi, pi]."""
    return normalize_angle(math.atan2(cross2(a, b), float(np.dot(a, b))))


def normalize_angle(angle: float) -> float:
    """Wrap an angle into (-pi, pi]."""
    wrapped = math.remainder(angle, TWO_PI)
    if wrapped <= -math.pi:
        wrapped += TWO_PI
    return wrapped


def wrap_angle(angle: float) -> float:
    """Wrap an angle into [0, 2pi)."""
    wrapped = math.fmod(angle, TWO_PI)
    if wrapped < 0:
        wrapped += TWO_PI
    if wrapped >= TWO_PI:
        wrapped = 0.0
    return wrapped


def angle_difference(a: float, b: float) -> float:
    """Shortest signed rotation from ``a`` to ``b``."""
    return normalize_angle(b - a)


def clamp(value: float, min_val: float, max_val: float) -> float:
    """Clamp value between min and max."""
    return max(min_val, min(max_val, value))


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def affine(angle: float, translation: PointLike = (0.0, 0.0)) -> np.ndarray:
    """Rotation by ``angle`` followed by a translation."""
    c = math.cos(angle)
    s = math.sin(angle)
    return np.array([
        [c, -s, float(translation[0])],
        [s, c, float(translation[1])],
        [0.0, 0.0, 1.0],
    ])


def transform_point(matrix: np.ndarray, point: PointLike) -> np.ndarray:
    """Apply an affine transform to a point (homogeneous divide included)."""
    x, y, w = matrix @ np.array([point[0], point[1], 1.0])
    return np.array([x / w, y / w])


def invert_affine(matrix: np.ndarray) -> np.ndarray:
    """
    Invert a 3x3 transform.

    Raises:
        SingularMatrixError: if the matrix has (near) zero determinant
    """
    det = float(np.linalg.det(matrix))
    if abs(det) < 1e-10:
        raise SingularMatrixError(f"Matrix is not invertible (det={det:.3e})")
    return np.linalg.inv(matrix)
