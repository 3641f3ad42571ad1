from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from pinholebearing.core.distortion import (
    DEFAULT_MAX_ITERS,
    DEFAULT_TOL,
    DISTORTION_MODELS,
    CameraConfigError,
    Distortion,
    DistortionModel,
    distortion_from_coefficients,
    parse_distortion_model,
)
from pinholebearing.core.geometry import (
    bearing_vectors,
    camera_matrix,
    denormalize_points,
    denormalize_xy,
    normalize_points,
    normalize_xy,
)
from pinholebearing.core.points import as_point_array, restore_layout
from pinholebearing.core.remap import build_undistort_maps, remap_image
from pinholebearing.options import CameraOptions

logger = logging.getLogger(__name__)


def _validated_intrinsics(intrinsics: Sequence[float]) -> np.ndarray:
    k = np.asarray(intrinsics, dtype=np.float64).reshape(-1)
    if k.shape[0] != 4:
        raise CameraConfigError(f"intrinsics must be (fx, fy, cx, cy); got {k.shape[0]} values")
    if not np.all(np.isfinite(k)):
        raise CameraConfigError("intrinsics must be finite")
    if k[0] <= 0.0 or k[1] <= 0.0:
        raise CameraConfigError("focal lengths fx and fy must be > 0")
    return k


@dataclass(frozen=True)
class UndistortedPoints:
    """
    Undistorted points in the caller's layout, plus a per-point (N,) converged mask.
    `iterations` is the number of solver steps the slowest point took.
    """

    points: np.ndarray
    converged: np.ndarray
    iterations: int

    @property
    def all_converged(self) -> bool:
        return bool(np.all(self.converged))


class PinholeCamera:
    """
    Pinhole camera with one lens-distortion model from the closed set in
    `DistortionModel`.

    Point spaces:
    - raw pixel: what the tracker observes (distorted);
    - normalized undistorted: x=X/Z, y=Y/Z in the camera frame;
    - pixel undistorted: normalized undistorted mapped back through the same intrinsics.

    Intrinsics can be replaced with `set_intrinsics`. Nothing here locks: an owner
    sharing the camera between stages must serialize `set_intrinsics` against
    readers.
    """

    def __init__(
        self,
        model: DistortionModel | str,
        distortion_coefficients: Sequence[float],
        intrinsics: Sequence[float],
        width: int,
        height: int,
    ) -> None:
        tag = parse_distortion_model(model)
        if tag is None or tag not in DISTORTION_MODELS:
            raise CameraConfigError(f"unsupported distortion model: {model!r}")
        if int(width) <= 0 or int(height) <= 0:
            raise CameraConfigError("image width and height must be > 0")

        self._model = tag
        self._distortion: Distortion = distortion_from_coefficients(tag, distortion_coefficients)
        self._coeffs = np.asarray([float(c) for c in distortion_coefficients], dtype=np.float64)
        self._intrinsics = _validated_intrinsics(intrinsics)
        self._width = int(width)
        self._height = int(height)
        self._maps: tuple[np.ndarray, np.ndarray] | None = None

    @classmethod
    def from_options(cls, opts: CameraOptions, intrinsics: Sequence[float] | None = None) -> "PinholeCamera":
        if intrinsics is None:
            intrinsics = opts.intrinsics
        return cls(
            model=opts.distortion_model,
            distortion_coefficients=opts.distortion_coefficients,
            intrinsics=intrinsics,
            width=opts.width,
            height=opts.height,
        )

    def __repr__(self) -> str:
        fx, fy, cx, cy = (float(v) for v in self._intrinsics)
        return (
            f"PinholeCamera(model={self._model.value!r}, intrinsics=({fx:g}, {fy:g}, {cx:g}, {cy:g}), "
            f"distortion_coefficients={tuple(float(c) for c in self._coeffs)}, "
            f"size=({self._width}, {self._height}))"
        )

    # -- store -------------------------------------------------------------

    @property
    def model(self) -> DistortionModel:
        return self._model

    @property
    def intrinsics(self) -> np.ndarray:
        """(fx, fy, cx, cy) as a copy; mutate through `set_intrinsics`."""
        return self._intrinsics.copy()

    @property
    def distortion_coefficients(self) -> np.ndarray:
        return self._coeffs.copy()

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def image_size(self) -> tuple[int, int]:
        return self._width, self._height

    def K(self) -> np.ndarray:
        return camera_matrix(self._intrinsics)

    def set_intrinsics(self, intrinsics: Sequence[float]) -> None:
        self._intrinsics = _validated_intrinsics(intrinsics)
        self._maps = None

    # -- normalization -----------------------------------------------------

    def normalize(self, uv_px):
        """Pixel -> normalized coordinates (intrinsics only, no distortion handling)."""
        return normalize_points(self._intrinsics, uv_px)

    def denormalize(self, xy):
        """Normalized -> pixel coordinates (intrinsics only, no distortion handling)."""
        return denormalize_points(self._intrinsics, xy)

    # -- distortion --------------------------------------------------------

    def undistort_points(
        self,
        uv_px,
        normalize: bool = False,
        *,
        tol: float = DEFAULT_TOL,
        max_iters: int = DEFAULT_MAX_ITERS,
    ) -> UndistortedPoints:
        """
        Raw (distorted) pixel points -> undistorted points.

        With `normalize=False` the result is in undistorted pixel space, with
        `normalize=True` in normalized undistorted space. `tol` is in normalized
        units. Points the solver could not bring within `tol` in `max_iters`
        steps are returned as their best (lowest-residual) iterate and flagged in `converged`.
        """
        xy, layout = as_point_array(uv_px)
        xd, yd = normalize_xy(self._intrinsics, xy[:, 0], xy[:, 1])
        res = self._distortion.undistort(xd, yd, tol=tol, max_iters=max_iters)
        if normalize:
            out = np.stack([res.x, res.y], axis=-1)
        else:
            u, v = denormalize_xy(self._intrinsics, res.x, res.y)
            out = np.stack([u, v], axis=-1)
        return UndistortedPoints(
            points=restore_layout(out, layout),
            converged=np.asarray(res.converged, dtype=bool).reshape(-1),
            iterations=res.iterations,
        )

    def undistort(self, uv_px, normalize: bool = False):
        """Best-effort `undistort_points` returning only the points."""
        return self.undistort_points(uv_px, normalize=normalize).points

    def distort(self, points, normalized: bool = False):
        """
        Forward model: undistorted points -> raw (distorted) pixel points.

        `normalized` says which space `points` are in: normalized undistorted
        (True) or undistorted pixel (False).
        """
        xy, layout = as_point_array(points)
        if normalized:
            x, y = xy[:, 0], xy[:, 1]
        else:
            x, y = normalize_xy(self._intrinsics, xy[:, 0], xy[:, 1])
        xd, yd = self._distortion.distort(x, y)
        u, v = denormalize_xy(self._intrinsics, xd, yd)
        return restore_layout(np.stack([u, v], axis=-1), layout)

    def bearings(self, uv_px) -> np.ndarray:
        """
        Raw pixel points -> unit bearing vectors in the camera frame.
        Shape (3,) for a single point, (N,3) otherwise.
        """
        xy, layout = as_point_array(uv_px)
        res = self.undistort_points(xy, normalize=True)
        d = bearing_vectors(res.points[:, 0], res.points[:, 1])
        return d.reshape(3) if layout.kind == "single" else d

    # -- images ------------------------------------------------------------

    def undistort_maps(self) -> tuple[np.ndarray, np.ndarray]:
        """(map_x, map_y) remap tables, built on first use and kept until `set_intrinsics`."""
        if self._maps is None:
            logger.debug("building %dx%d %s undistortion maps", self._width, self._height, self._model.value)
            self._maps = build_undistort_maps(self._intrinsics, self._distortion, self._width, self._height)
        return self._maps

    def undistort_image(self, image: np.ndarray, out: np.ndarray | None = None) -> np.ndarray:
        map_x, map_y = self.undistort_maps()
        return remap_image(image, map_x, map_y, out=out)


def create_camera(opts: CameraOptions, intrinsics: Sequence[float] | None = None) -> PinholeCamera | None:
    """
    Build the camera selected by `opts.distortion_model`.

    Returns None when the model is not one of `DistortionModel`; callers must check.
    `intrinsics` (fx, fy, cx, cy) overrides `opts.intrinsics` when given. A supported
    model with an invalid configuration raises `CameraConfigError`.
    """
    tag = parse_distortion_model(opts.distortion_model)
    if tag is None or tag not in DISTORTION_MODELS:
        logger.warning("unsupported distortion model %r, no camera created", opts.distortion_model)
        return None
    return PinholeCamera.from_options(opts, intrinsics=intrinsics)
