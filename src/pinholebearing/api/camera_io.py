from __future__ import annotations

import json
from pathlib import Path

from pinholebearing.core.camera import PinholeCamera, create_camera
from pinholebearing.core.distortion import CameraConfigError
from pinholebearing.options import (
    CameraOptions,
    OptionsValidationError,
    camera_options_to_dict,
    load_camera_options,
)


def save_camera_options(path: Path, opts: CameraOptions) -> Path:
    """
    Write a camera options record as JSON (schema `pinholebearing.camera.v0`).
    Parent directories are created as needed.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(camera_options_to_dict(opts), indent=2, sort_keys=True), encoding="utf-8")
    return path


def camera_to_options(camera: PinholeCamera) -> CameraOptions:
    return CameraOptions(
        distortion_model=camera.model.value,
        distortion_coefficients=tuple(float(c) for c in camera.distortion_coefficients),
        intrinsics=tuple(float(v) for v in camera.intrinsics),  # type: ignore[arg-type]
        resolution=camera.image_size,
    )


def save_camera(path: Path, camera: PinholeCamera) -> Path:
    return save_camera_options(path, camera_to_options(camera))


def load_camera(path: Path) -> PinholeCamera | None:
    """
    Load options from `path` and build the camera they describe.

    Returns None for an unsupported distortion model, like `create_camera`.
    """
    path = Path(path)
    try:
        opts = load_camera_options(path)
    except json.JSONDecodeError as e:
        raise ValueError(f"{path} is not valid JSON: {e}") from e
    except OptionsValidationError as e:
        raise ValueError(f"{path} invalid camera options: {e}") from e
    try:
        return create_camera(opts)
    except CameraConfigError as e:
        raise ValueError(f"{path} invalid camera configuration: {e}") from e
