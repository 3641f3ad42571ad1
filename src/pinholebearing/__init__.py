from pinholebearing import options
from pinholebearing.api import load_camera, save_camera, save_camera_options
from pinholebearing.core.camera import PinholeCamera, UndistortedPoints, create_camera
from pinholebearing.core.distortion import CameraConfigError, DistortionModel
from pinholebearing.options import CameraOptions, OptionsValidationError, load_camera_options, parse_camera_options

__all__ = [
    "options",
    "CameraConfigError",
    "CameraOptions",
    "DistortionModel",
    "OptionsValidationError",
    "PinholeCamera",
    "UndistortedPoints",
    "create_camera",
    "load_camera",
    "load_camera_options",
    "parse_camera_options",
    "save_camera",
    "save_camera_options",
]
