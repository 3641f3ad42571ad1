from pinholebearing.api.camera_io import camera_to_options, load_camera, save_camera, save_camera_options

__all__ = [
    "camera_to_options",
    "load_camera",
    "save_camera",
    "save_camera_options",
]
