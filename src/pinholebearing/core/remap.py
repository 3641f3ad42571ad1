"""
Dense image undistortion via remap tables.

For every pixel of the undistorted output grid the tables hold the source pixel
in the raw (distorted) image: output pixel -> normalize -> forward distortion ->
denormalize. The output keeps the input camera matrix, as `cv2.undistort` does.
Tables depend only on intrinsics, coefficients and image size, so callers are
expected to build them once per configuration and reuse them for every frame.
"""
from __future__ import annotations

import cv2
import numpy as np

from pinholebearing.core.distortion import Distortion
from pinholebearing.core.geometry import denormalize_xy, normalize_xy


def build_undistort_maps(
    intrinsics,
    distortion: Distortion,
    width: int,
    height: int,
) -> tuple[np.ndarray, np.ndarray]:
    """Returns (map_x, map_y), float32 arrays shaped (H, W) for `cv2.remap`."""
    w = int(width)
    h = int(height)
    yy, xx = np.meshgrid(np.arange(h, dtype=np.float64), np.arange(w, dtype=np.float64), indexing="ij")
    x, y = normalize_xy(intrinsics, xx, yy)
    xd, yd = distortion.distort(x, y)
    u, v = denormalize_xy(intrinsics, xd, yd)
    return u.astype(np.float32), v.astype(np.float32)


def remap_image(
    image: np.ndarray,
    map_x: np.ndarray,
    map_y: np.ndarray,
    out: np.ndarray | None = None,
    interpolation: int = cv2.INTER_LINEAR,
    border_value: float = 0.0,
) -> np.ndarray:
    """
    Resample `image` through precomputed tables. `out`, when given, must already
    have the output shape and the image dtype; it is filled in place and returned.
    """
    image = np.asarray(image)
    if image.ndim not in (2, 3):
        raise ValueError(f"image must be (H,W) or (H,W,C); got shape {image.shape}")
    if image.shape[:2] != map_x.shape or map_x.shape != map_y.shape:
        raise ValueError(f"image size {image.shape[:2]} does not match remap tables {map_x.shape}")

    if out is None:
        return cv2.remap(
            image,
            map_x,
            map_y,
            interpolation=interpolation,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=border_value,
        )

    if out.shape != image.shape or out.dtype != image.dtype:
        raise ValueError("out must have the same shape and dtype as image")
    if not out.flags.c_contiguous:
        raise ValueError("out must be C-contiguous")
    if np.shares_memory(out, image):
        raise ValueError("out must not share memory with image")
    cv2.remap(
        image,
        map_x,
        map_y,
        dst=out,
        interpolation=interpolation,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=border_value,
    )
    return out
