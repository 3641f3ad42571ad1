from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any

SCHEMA_VERSION = "pinholebearing.camera.v0"


class OptionsValidationError(ValueError):
    pass


@dataclass(frozen=True)
class CameraOptions:
    """
    Per-camera configuration record.

    `distortion_model` is kept as the raw (lower-cased) name: whether it names a
    supported model is decided by the camera factory, not by the parser.
    """

    distortion_model: str
    distortion_coefficients: tuple[float, ...]
    intrinsics: tuple[float, float, float, float]  # fx, fy, cx, cy
    resolution: tuple[int, int]  # width, height

    @property
    def width(self) -> int:
        return self.resolution[0]

    @property
    def height(self) -> int:
        return self.resolution[1]


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise OptionsValidationError(msg)


def _float_list(values: Any, name: str) -> list[float]:
    _require(isinstance(values, (list, tuple)), f"{name} must be a list of numbers")
    try:
        out = [float(v) for v in values]
    except (TypeError, ValueError) as e:
        raise OptionsValidationError(f"{name} must contain only numbers") from e
    _require(all(math.isfinite(v) for v in out), f"{name} must be finite")
    return out


def load_camera_options(path: Path) -> CameraOptions:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return parse_camera_options(data)


def parse_camera_options(data: dict[str, Any]) -> CameraOptions:
    schema_version = data.get("schema_version", SCHEMA_VERSION)
    _require(schema_version == SCHEMA_VERSION, f"schema_version must be {SCHEMA_VERSION}")

    model = data.get("distortion_model")
    _require(isinstance(model, str) and model.strip() != "", "distortion_model is required")

    coeffs = _float_list(data.get("distortion_coefficients", []), "distortion_coefficients")

    intr_raw = data.get("intrinsics")
    _require(intr_raw is not None, "intrinsics is required")
    intr = _float_list(intr_raw, "intrinsics")
    _require(len(intr) == 4, "intrinsics must be [fx,fy,cx,cy]")
    _require(intr[0] > 0.0 and intr[1] > 0.0, "intrinsics fx and fy must be > 0")

    res = data.get("resolution")
    _require(isinstance(res, (list, tuple)) and len(res) == 2, "resolution must be [width,height]")
    _require(
        all(isinstance(v, int) and not isinstance(v, bool) for v in res),
        "resolution width and height must be integers",
    )
    w, h = res[0], res[1]
    _require(w > 0 and h > 0, "resolution width and height must be > 0")

    return CameraOptions(
        distortion_model=model.strip().lower(),
        distortion_coefficients=tuple(coeffs),
        intrinsics=(intr[0], intr[1], intr[2], intr[3]),
        resolution=(w, h),
    )


def camera_options_to_dict(opts: CameraOptions) -> dict[str, Any]:
    return {
        "schema_version": SCHEMA_VERSION,
        "distortion_model": opts.distortion_model,
        "distortion_coefficients": [float(c) for c in opts.distortion_coefficients],
        "intrinsics": [float(v) for v in opts.intrinsics],
        "resolution": [int(opts.resolution[0]), int(opts.resolution[1])],
    }
