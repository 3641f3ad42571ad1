from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, Sequence

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_TOL = 1e-6
DEFAULT_MAX_ITERS = 20

_EPS = 1e-8
# Equidistant angles live in [0, pi/2): beyond that tan(theta) changes sign.
_THETA_MAX = 0.5 * math.pi - 1e-6


class CameraConfigError(ValueError):
    pass


class DistortionModel(str, Enum):
    RADTAN = "radtan"
    EQUIDISTANT = "equidistant"


@dataclass(frozen=True)
class UndistortResult:
    """
    Output of an iterative inverse on normalized coordinates.

    `converged` is a per-point boolean mask with the shape of `x`. Points that did
    not reach the tolerance within the iteration budget still carry their best
    iterate in `x`/`y`; it is up to the caller whether to trust them.
    """

    x: np.ndarray
    y: np.ndarray
    converged: np.ndarray
    iterations: int

    @property
    def all_converged(self) -> bool:
        return bool(np.all(self.converged))


class Distortion(Protocol):
    model: DistortionModel

    def distort(self, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]: ...

    def undistort(
        self, xd: np.ndarray, yd: np.ndarray, *, tol: float = ..., max_iters: int = ...
    ) -> UndistortResult: ...

    def to_coefficients(self) -> tuple[float, ...]: ...


def _finite_coefficients(coeffs: Sequence[float], model: DistortionModel, allowed: tuple[int, ...]) -> list[float]:
    c = [float(v) for v in coeffs]
    if len(c) not in allowed:
        sizes = " or ".join(str(n) for n in allowed)
        raise CameraConfigError(f"{model.value} distortion expects {sizes} coefficients, got {len(c)}")
    if not all(math.isfinite(v) for v in c):
        raise CameraConfigError(f"{model.value} distortion coefficients must be finite")
    return c


def _log_unconverged(model: DistortionModel, converged: np.ndarray, iterations: int) -> None:
    n_bad = int(converged.size - np.count_nonzero(converged))
    if n_bad:
        logger.debug(
            "%s undistortion: %d/%d points not converged after %d iterations",
            model.value,
            n_bad,
            converged.size,
            iterations,
        )


@dataclass(frozen=True)
class RadtanDistortion:
    """
    Radial-tangential (Brown-Conrady) distortion on normalized camera coordinates
    (x=X/Z, y=Y/Z).

    Parameters follow OpenCV naming and order: k1, k2, p1, p2[, k3].
    """

    k1: float = 0.0
    k2: float = 0.0
    p1: float = 0.0
    p2: float = 0.0
    k3: float = 0.0

    model = DistortionModel.RADTAN

    @classmethod
    def from_coefficients(cls, coeffs: Sequence[float]) -> "RadtanDistortion":
        c = _finite_coefficients(coeffs, DistortionModel.RADTAN, (4, 5))
        k3 = c[4] if len(c) == 5 else 0.0
        return cls(k1=c[0], k2=c[1], p1=c[2], p2=c[3], k3=k3)

    def to_coefficients(self) -> tuple[float, ...]:
        return (self.k1, self.k2, self.p1, self.p2, self.k3)

    def distort(self, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        r2 = x * x + y * y
        r4 = r2 * r2
        r6 = r4 * r2
        radial = 1.0 + self.k1 * r2 + self.k2 * r4 + self.k3 * r6
        x2 = x * x
        y2 = y * y
        xy = x * y
        x_tan = 2.0 * self.p1 * xy + self.p2 * (r2 + 2.0 * x2)
        y_tan = self.p1 * (r2 + 2.0 * y2) + 2.0 * self.p2 * xy
        xd = x * radial + x_tan
        yd = y * radial + y_tan
        return xd, yd

    def undistort(
        self,
        xd: np.ndarray,
        yd: np.ndarray,
        *,
        tol: float = DEFAULT_TOL,
        max_iters: int = DEFAULT_MAX_ITERS,
    ) -> UndistortResult:
        """
        Fixed-point inverse of distort(), seeded with the distorted point.

        A point stops moving once its forward residual max(|dx|, |dy|) drops below
        `tol`, so each point follows the same trajectory whether it is solved alone
        or inside a batch.

        Beyond the radius where the radial polynomial folds over there is no
        inverse and the iteration diverges. Each point therefore reports its
        lowest-residual iterate, and a point stops moving once its residual is no
        longer finite. The result is always finite for finite input.
        """
        xd = np.asarray(xd, dtype=np.float64)
        yd = np.asarray(yd, dtype=np.float64)
        x = xd.copy()
        y = yd.copy()
        best_x = x.copy()
        best_y = y.copy()
        best_err = np.full(xd.shape, np.inf)
        iterations = 0
        with np.errstate(over="ignore", invalid="ignore"):
            while True:
                x_est, y_est = self.distort(x, y)
                ex = xd - x_est
                ey = yd - y_est
                err = np.maximum(np.abs(ex), np.abs(ey))
                better = np.isfinite(err) & (err < best_err)
                best_x = np.where(better, x, best_x)
                best_y = np.where(better, y, best_y)
                best_err = np.where(better, err, best_err)
                converged = best_err < tol
                active = ~converged & np.isfinite(err)
                if not np.any(active) or iterations >= int(max_iters):
                    break
                x = np.where(active, x + ex, x)
                y = np.where(active, y + ey, y)
                iterations += 1
        _log_unconverged(self.model, converged, iterations)
        return UndistortResult(x=best_x, y=best_y, converged=converged, iterations=iterations)


@dataclass(frozen=True)
class EquidistantDistortion:
    """
    Equidistant fisheye (Kannala-Brandt) distortion, OpenCV `cv2.fisheye` convention:

      theta   = atan(r),  r = sqrt(x^2 + y^2)
      theta_d = theta * (1 + k1 theta^2 + k2 theta^4 + k3 theta^6 + k4 theta^8)
      (xd, yd) = (theta_d / r) * (x, y)
    """

    k1: float = 0.0
    k2: float = 0.0
    k3: float = 0.0
    k4: float = 0.0

    model = DistortionModel.EQUIDISTANT

    @classmethod
    def from_coefficients(cls, coeffs: Sequence[float]) -> "EquidistantDistortion":
        c = _finite_coefficients(coeffs, DistortionModel.EQUIDISTANT, (4,))
        return cls(k1=c[0], k2=c[1], k3=c[2], k4=c[3])

    def to_coefficients(self) -> tuple[float, ...]:
        return (self.k1, self.k2, self.k3, self.k4)

    def _theta_d(self, theta: np.ndarray) -> np.ndarray:
        t2 = theta * theta
        t4 = t2 * t2
        t6 = t4 * t2
        t8 = t4 * t4
        return theta * (1.0 + self.k1 * t2 + self.k2 * t4 + self.k3 * t6 + self.k4 * t8)

    def _dtheta_d(self, theta: np.ndarray) -> np.ndarray:
        t2 = theta * theta
        t4 = t2 * t2
        t6 = t4 * t2
        t8 = t4 * t4
        return 1.0 + 3.0 * self.k1 * t2 + 5.0 * self.k2 * t4 + 7.0 * self.k3 * t6 + 9.0 * self.k4 * t8

    def distort(self, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        r = np.hypot(x, y)
        big = r > _EPS
        r_safe = np.where(big, r, 1.0)
        theta_d = self._theta_d(np.arctan(r))
        scale = np.where(big, theta_d / r_safe, 1.0)
        return x * scale, y * scale

    def undistort(
        self,
        xd: np.ndarray,
        yd: np.ndarray,
        *,
        tol: float = DEFAULT_TOL,
        max_iters: int = DEFAULT_MAX_ITERS,
    ) -> UndistortResult:
        """
        Solve theta_d -> theta with Newton steps kept inside [0, pi/2), then rescale
        the distorted point by tan(theta) / theta_d.
        """
        xd = np.asarray(xd, dtype=np.float64)
        yd = np.asarray(yd, dtype=np.float64)
        theta_d = np.hypot(xd, yd)
        theta = np.clip(theta_d, 0.0, _THETA_MAX)
        iterations = 0
        while True:
            f = self._theta_d(theta) - theta_d
            converged = np.abs(f) < tol
            if np.all(converged) or iterations >= int(max_iters):
                break
            df = self._dtheta_d(theta)
            df = np.copysign(np.maximum(np.abs(df), _EPS), df)
            theta_new = np.clip(theta - f / df, 0.0, _THETA_MAX)
            theta = np.where(converged, theta, theta_new)
            iterations += 1
        _log_unconverged(self.model, converged, iterations)

        big = theta_d > _EPS
        scale = np.where(big, np.tan(theta) / np.where(big, theta_d, 1.0), 1.0)
        return UndistortResult(x=xd * scale, y=yd * scale, converged=converged, iterations=iterations)


DISTORTION_MODELS: dict[DistortionModel, type] = {
    DistortionModel.RADTAN: RadtanDistortion,
    DistortionModel.EQUIDISTANT: EquidistantDistortion,
}


def parse_distortion_model(name: str | DistortionModel) -> DistortionModel | None:
    """Map a model name onto the closed set of supported models, or None."""
    if isinstance(name, DistortionModel):
        return name
    try:
        return DistortionModel(str(name).strip().lower())
    except ValueError:
        return None


def distortion_from_coefficients(model: DistortionModel, coeffs: Sequence[float]) -> Distortion:
    cls = DISTORTION_MODELS[model]
    return cls.from_coefficients(coeffs)
