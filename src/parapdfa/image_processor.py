# src/parapdfa/image_processor.py
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
from PIL import Image

from .models import ColorModel, ImageInfo

logger = logging.getLogger("parapdfa")

_PIL_MODE = {
    ColorModel.COLOR: "RGB",
    ColorModel.GRAY: "L",
    ColorModel.MONOCHROME: "1",
}


def color_model_for_mode(mode: str) -> Tuple[ColorModel, int]:
    """Maps a Pillow mode to (color model, bits per sample)."""
    if mode == "1":
        return ColorModel.MONOCHROME, 1
    if mode in ("L", "LA"):
        return ColorModel.GRAY, 8
    if mode.startswith("I;16"):
        return ColorModel.GRAY, 16
    if mode in ("I", "F"):
        return ColorModel.GRAY, 32
    return ColorModel.COLOR, 8


def to_8bit_gray(im: Image.Image) -> Image.Image:
    """
    Rescales high bit depth gray (Pillow modes I;16*, I and F) to 8 bit "L".
    16 bit samples are divided by 257; 32 bit samples are scaled by their peak
    when it exceeds the 16 bit range.
    """
    arr = np.asarray(im, dtype=np.float64)
    if im.mode.startswith("I;16"):
        arr = arr / 257.0
    else:
        peak = float(arr.max()) if arr.size else 0.0
        if peak > 65535:
            arr = arr * (255.0 / peak)
        elif peak > 255:
            arr = arr / 257.0
    return Image.fromarray(np.clip(np.floor(arr + 0.5), 0, 255).astype(np.uint8))


def resolution_from_info(info: dict) -> Tuple[Optional[float], str]:
    """
    Declared resolution of an image and its unit ("inch" or "cm").
    Pillow already reports PNG and TIFF resolutions per inch; JPEG files
    whose JFIF header counts dots per centimeter only expose the raw density.
    """
    dpi = info.get("dpi")
    if dpi:
        x = float(dpi[0])
        if x > 1:
            return x, "inch"
    if info.get("jfif_unit") == 2 and info.get("jfif_density"):
        x = float(info["jfif_density"][0])
        if x > 0:
            return x, "cm"
    return None, "inch"


# --- interface ---
class BaseImageProcessor(ABC):
    """
    Reads raster metadata and turns standalone images into working rasters.
    """

    @abstractmethod
    def read_info(self, path: Path) -> ImageInfo:
        raise NotImplementedError

    @abstractmethod
    def page_size(self, path: Path) -> Tuple[float, float]:
        """Size of the image in points, falling back to 1 px = 1 pt."""
        raise NotImplementedError

    @abstractmethod
    def convert(self, src: Path, dest: Path, color_model: ColorModel, scale: float = 1.0) -> Path:
        raise NotImplementedError


# --- Pillow implementation ---
class PillowImageProcessor(BaseImageProcessor):

    def read_info(self, path: Path) -> ImageInfo:
        with Image.open(path) as im:
            color_model, depth = color_model_for_mode(im.mode)
            resolution, unit = resolution_from_info(im.info)
            return ImageInfo(
                width=im.width,
                height=im.height,
                color_model=color_model,
                depth=depth,
                resolution=resolution,
                resolution_unit=unit,
            )

    def page_size(self, path: Path) -> Tuple[float, float]:
        info = self.read_info(path)
        if not info.resolution:
            return float(info.width), float(info.height)
        per_inch = info.resolution * 2.54 if info.resolution_unit == "cm" else info.resolution
        return info.width * 72.0 / per_inch, info.height * 72.0 / per_inch

    def convert(self, src: Path, dest: Path, color_model: ColorModel, scale: float = 1.0) -> Path:
        target_mode = _PIL_MODE[color_model]
        with Image.open(src) as im:
            im.load()
            if im.mode.startswith(("I", "F")):
                im = to_8bit_gray(im)
            # bilevel output is resampled in gray, then thresholded
            work_mode = "L" if color_model is ColorModel.MONOCHROME else target_mode
            if im.mode != work_mode:
                im = im.convert(work_mode)
            if abs(scale - 1.0) > 1e-6:
                size = (max(1, round(im.width * scale)), max(1, round(im.height * scale)))
                logger.debug("Resampling %s from %sx%s to %sx%s", src.name, im.width, im.height, *size)
                im = im.resize(size, Image.Resampling.LANCZOS)
            if color_model is ColorModel.MONOCHROME:
                im = im.convert("1", dither=Image.Dither.NONE)
            dest.parent.mkdir(parents=True, exist_ok=True)
            im.save(dest)
        return dest


def get_image_processor(engine_name: str = "pillow") -> BaseImageProcessor:
    name = (engine_name or "").lower()
    if name == "pillow":
        return PillowImageProcessor()
    raise ValueError(f"Unknown image engine, '{engine_name}'. Supported engines, ['pillow']")
