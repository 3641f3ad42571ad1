"""
Point storage conventions.

Two interchangeable layouts are accepted everywhere a batch of 2D points is:

- native: ``(2,)`` for a single point, ``(N, 2)`` for a batch (lists of pairs are fine);
- OpenCV: ``(N, 1, 2)``, the layout of ``cv2.goodFeaturesToTrack`` and
  ``cv2.undistortPoints``.

Algorithms run on a canonical ``(N, 2)`` float64 array; results are handed back
in the caller's layout and floating dtype.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import numpy as np

PointKind = Literal["single", "batch", "opencv"]


@dataclass(frozen=True)
class PointLayout:
    kind: PointKind
    dtype: np.dtype


def as_point_array(uv) -> tuple[np.ndarray, PointLayout]:
    """Return a fresh ``(N, 2)`` float64 copy of `uv` and the layout it came in."""
    arr = np.asarray(uv)
    dtype = arr.dtype if np.issubdtype(arr.dtype, np.floating) else np.dtype(np.float64)

    if arr.ndim == 1 and arr.shape[0] == 2:
        kind: PointKind = "single"
    elif arr.ndim == 2 and arr.shape[1] == 2:
        kind = "batch"
    elif arr.ndim == 3 and arr.shape[1:] == (1, 2):
        kind = "opencv"
    elif arr.size == 0:
        kind = "batch"
    else:
        raise ValueError(f"points must have shape (2,), (N,2) or (N,1,2); got {arr.shape}")

    xy = np.array(arr, dtype=np.float64).reshape(-1, 2)
    return xy, PointLayout(kind=kind, dtype=dtype)


def restore_layout(xy: np.ndarray, layout: PointLayout) -> np.ndarray:
    xy = np.asarray(xy, dtype=np.float64).reshape(-1, 2)
    if layout.kind == "single":
        out = xy.reshape(2)
    elif layout.kind == "opencv":
        out = xy.reshape(-1, 1, 2)
    else:
        out = xy
    return out.astype(layout.dtype, copy=False)


def from_opencv_points(pts) -> np.ndarray:
    """Canonical ``(N, 2)`` float64 copy of points in any accepted layout."""
    xy, _ = as_point_array(pts)
    return xy
