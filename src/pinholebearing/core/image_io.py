from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np
from PIL import Image


def load_image(path: str | Path, grayscale: bool = False) -> np.ndarray:
    """
    Load an image as a numpy raster: (H,W) when `grayscale`, otherwise (H,W) or
    (H,W,C) in OpenCV channel order (BGR/BGRA).

    Primary backend is OpenCV. Pillow is used when OpenCV cannot decode the file
    (builds without some codecs, e.g. webp).
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Missing {p}")

    flags = cv2.IMREAD_GRAYSCALE if grayscale else cv2.IMREAD_UNCHANGED
    img = cv2.imread(str(p), flags)
    if img is not None:
        return img

    with Image.open(p) as im:
        if grayscale:
            return np.asarray(im.convert("L"), dtype=np.uint8)
        if im.mode not in ("L", "RGB", "RGBA"):
            im = im.convert("RGB")
        arr = np.asarray(im)
    if arr.ndim == 3:
        code = cv2.COLOR_RGBA2BGRA if arr.shape[2] == 4 else cv2.COLOR_RGB2BGR
        arr = cv2.cvtColor(arr, code)
    return arr


def save_image(path: str | Path, image: np.ndarray) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(p), np.asarray(image)):
        raise OSError(f"could not write image {p}")
    return p
