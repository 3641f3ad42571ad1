from __future__ import annotations

import numpy as np

from pinholebearing.core.points import as_point_array, restore_layout


def _fxfycxcy(intrinsics) -> tuple[float, float, float, float]:
    k = np.asarray(intrinsics, dtype=np.float64).reshape(-1)
    if k.shape[0] != 4:
        raise ValueError("intrinsics must be (fx, fy, cx, cy)")
    return float(k[0]), float(k[1]), float(k[2]), float(k[3])


def normalize_xy(intrinsics, u_px: np.ndarray, v_px: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Pixel coordinates (u,v) -> normalized camera coordinates (x,y).

    Removes only the linear intrinsic transform; distortion is untouched, so a
    distorted pixel maps to a distorted normalized point.
    """
    fx, fy, cx, cy = _fxfycxcy(intrinsics)
    u_px = np.asarray(u_px, dtype=np.float64)
    v_px = np.asarray(v_px, dtype=np.float64)
    return (u_px - cx) / fx, (v_px - cy) / fy


def denormalize_xy(intrinsics, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Inverse of `normalize_xy` for the same intrinsics."""
    fx, fy, cx, cy = _fxfycxcy(intrinsics)
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    return x * fx + cx, y * fy + cy


def normalize_points(intrinsics, uv):
    """Point-layout aware `normalize_xy`: a single point, a batch or OpenCV ``(N,1,2)``."""
    xy, layout = as_point_array(uv)
    x, y = normalize_xy(intrinsics, xy[:, 0], xy[:, 1])
    return restore_layout(np.stack([x, y], axis=-1), layout)


def denormalize_points(intrinsics, xy):
    """Point-layout aware `denormalize_xy`."""
    pts, layout = as_point_array(xy)
    u, v = denormalize_xy(intrinsics, pts[:, 0], pts[:, 1])
    return restore_layout(np.stack([u, v], axis=-1), layout)


def camera_matrix(intrinsics) -> np.ndarray:
    fx, fy, cx, cy = _fxfycxcy(intrinsics)
    return np.array([[fx, 0.0, cx], [0.0, fy, cy], [0.0, 0.0, 1.0]], dtype=np.float64)


def bearing_vectors(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """
    Unit bearings from normalized undistorted coordinates x=X/Z, y=Y/Z.
    Returns shape (..., 3).
    """
    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    dirs = np.stack([x, y, np.ones_like(x)], axis=-1)
    norms = np.linalg.norm(dirs, axis=-1, keepdims=True)
    return dirs / norms
