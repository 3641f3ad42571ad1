from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import numpy as np

from pinholebearing.api.camera_io import load_camera
from pinholebearing.core.image_io import load_image, save_image
from pinholebearing.core.points import from_opencv_points
from pinholebearing.logger import init_logger


def load_points(path: Path) -> np.ndarray:
    """Points as (N,2) from a .npy file (native or OpenCV layout) or a two-column text/CSV file."""
    path = Path(path)
    if path.suffix.lower() == ".npy":
        pts = np.load(path)
    else:
        delimiter = "," if path.suffix.lower() == ".csv" else None
        pts = np.loadtxt(path, delimiter=delimiter, ndmin=2)
    try:
        return from_opencv_points(pts)
    except ValueError as e:
        raise ValueError(f"{path}: {e}") from e


def write_points(path: Path | None, pts: np.ndarray) -> None:
    if path is None:
        np.savetxt(sys.stdout, pts, fmt="%.10f")
        return
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".npy":
        np.save(path, pts)
    else:
        delimiter = "," if path.suffix.lower() == ".csv" else " "
        np.savetxt(path, pts, fmt="%.10f", delimiter=delimiter)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="pinholebearing")
    parser.add_argument("--log-dir", type=Path, default=None, help="Also write a log file to this directory.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug messages to the console.")
    sub = parser.add_subparsers(dest="cmd", required=True)

    pts = sub.add_parser(
        "undistort-points",
        help="Undistort raw pixel points (.npy, .csv or whitespace-separated text, two columns).",
    )
    pts.add_argument("camera", type=Path, help="Camera options JSON.")
    pts.add_argument("points", type=Path)
    pts.add_argument(
        "--normalize",
        action="store_true",
        help="Output normalized undistorted coordinates instead of undistorted pixels.",
    )
    pts.add_argument("--out", type=Path, default=None, help="Output file (default: stdout).")

    img = sub.add_parser("undistort-image", help="Undistort an image file with the camera's remap tables.")
    img.add_argument("camera", type=Path, help="Camera options JSON.")
    img.add_argument("image", type=Path)
    img.add_argument("out", type=Path)

    args = parser.parse_args(argv)

    logger = init_logger(
        "pinholebearing",
        log_dir=args.log_dir,
        console_level=logging.DEBUG if args.verbose else logging.INFO,
    )

    try:
        camera = load_camera(args.camera)
    except (OSError, ValueError) as e:
        logger.error("%s", e)
        return 2
    if camera is None:
        logger.error("%s: unsupported distortion model", args.camera)
        return 2

    if args.cmd == "undistort-points":
        uv = load_points(args.points)
        res = camera.undistort_points(uv, normalize=args.normalize)
        n_bad = int(np.count_nonzero(~res.converged))
        if n_bad:
            logger.warning("%d/%d points did not converge; best estimates written", n_bad, res.converged.size)
        write_points(args.out, res.points)
        if args.out is not None:
            logger.info("Wrote %s", args.out)
        return 0

    if args.cmd == "undistort-image":
        image = load_image(args.image)
        out = camera.undistort_image(image)
        save_image(args.out, out)
        logger.info("Wrote %s", args.out)
        return 0

    raise AssertionError(f"Unhandled cmd: {args.cmd}")
