"""
Ghost cells, neighbour access and slope limiting on the (nx, ny, neta) grid.

Every helper takes arrays whose first three axes are the grid axes; any
trailing axes (tensor components) are carried along untouched.
"""

import numpy as np

GHOST_POINTS = 2


def apply_boundary_conditions(
    field: np.ndarray, axis: int, boundary: str, ghost_points: int = GHOST_POINTS
) -> np.ndarray:
    """
    Extend ``field`` by ``ghost_points`` cells on both sides of ``axis``.

    Args:
        field: Array with grid axes first
        axis: Grid axis (0, 1 or 2)
        boundary: "outflow" (zero gradient) or "periodic"
        ghost_points: Number of ghost cells per side

    Returns:
        Extended array, ``2 * ghost_points`` longer along ``axis``
    """
    if boundary == "periodic":
        n = field.shape[axis]
        left_ghost = np.take(field, range(n - ghost_points, n), axis=axis, mode="wrap")
        right_ghost = np.take(field, range(ghost_points), axis=axis, mode="wrap")
    elif boundary == "outflow":
        left_ghost = np.repeat(np.take(field, [0], axis=axis), ghost_points, axis=axis)
        right_ghost = np.repeat(np.take(field, [-1], axis=axis), ghost_points, axis=axis)
    else:
        raise ValueError(f"Unknown boundary condition: {boundary}")
    return np.concatenate([left_ghost, field, right_ghost], axis=axis)


def neighbours(field: np.ndarray, axis: int, boundary: str) -> dict[int, np.ndarray]:
    """
    Shifted copies of ``field`` along ``axis``.

    Returns:
        Mapping offset -> array with ``result[k][i] == field[i + k]`` for
        k in (-2, -1, 0, 1, 2), ghost cells filled per ``boundary``
    """
    extended = apply_boundary_conditions(field, axis, boundary)
    n = field.shape[axis]
    shifted = {}
    for offset in range(-GHOST_POINTS, GHOST_POINTS + 1):
        index = [slice(None)] * extended.ndim
        start = GHOST_POINTS + offset
        index[axis] = slice(start, start + n)
        shifted[offset] = extended[tuple(index)]
    return shifted


def central_difference(field: np.ndarray, axis: int, spacing: float, boundary: str) -> np.ndarray:
    """Second-order central difference (f[i+1] - f[i-1]) / (2 spacing)."""
    nb = neighbours(field, axis, boundary)
    return (nb[1] - nb[-1]) / (2.0 * spacing)


def minmod_dx(up1: np.ndarray, u: np.ndarray, um1: np.ndarray, theta: float) -> np.ndarray:
    """
    Generalized minmod slope.

    Zero at extrema, otherwise the smallest of theta*(up1 - u),
    (up1 - um1)/2 and theta*(u - um1), with their common sign.
    """
    diff_plus = up1 - u
    diff_minus = u - um1
    same_sign = diff_plus * diff_minus > 0.0
    magnitude = np.minimum(
        np.minimum(np.abs(theta * diff_plus), np.abs(0.5 * (up1 - um1))),
        np.abs(theta * diff_minus),
    )
    return np.where(same_sign, np.sign(diff_plus) * magnitude, 0.0)
