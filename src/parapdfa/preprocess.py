# src/parapdfa/preprocess.py
from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import numpy as np
from PIL import Image

from .utils import resolve_tool_cmd

logger = logging.getLogger("parapdfa")


class BaseDeskewer(ABC):
    @abstractmethod
    def deskew(self, src: Path, dest: Path, dpi: int) -> Path:
        """Straightens src into dest, keeping the pixel size unchanged."""
        raise NotImplementedError


class BaseCleaner(ABC):
    @abstractmethod
    def clean(self, src: Path, dest: Path, dpi: int) -> Path:
        raise NotImplementedError


class ProjectionDeskewer(BaseDeskewer):
    """
    Finds the skew angle that maximizes the variance of the row projection
    of the ink, then rotates the page by that angle around its center.
    """

    def __init__(self, max_angle: float = 10.0, step: float = 0.2,
                 min_angle: float = 0.1, work_width: int = 1000):
        self.max_angle = max_angle
        self.step = step
        self.min_angle = min_angle
        self.work_width = work_width

    def find_angle(self, im: Image.Image) -> float:
        gray = im.convert("L")
        # Angle search runs on a reduced copy; the angle does not depend on scale
        if gray.width > self.work_width:
            ratio = self.work_width / gray.width
            gray = gray.resize((self.work_width, max(1, round(gray.height * ratio))))
        ink = gray.point(lambda v: 255 if v < 128 else 0)

        if np.count_nonzero(np.asarray(ink)) < 10:
            logger.debug("Insufficient ink for deskew, skipping rotation")
            return 0.0

        best_angle, best_score = 0.0, -1.0
        for angle in np.arange(-self.max_angle, self.max_angle + self.step / 2, self.step):
            rotated = ink.rotate(float(angle), resample=Image.Resampling.NEAREST, fillcolor=0)
            proj = np.asarray(rotated, dtype=np.float64).sum(axis=1)
            score = float(np.sum(proj ** 2))
            if score > best_score:
                best_score = score
                best_angle = float(angle)
        return round(best_angle, 2)

    def deskew(self, src: Path, dest: Path, dpi: int) -> Path:
        with Image.open(src) as im:
            im.load()
            angle = self.find_angle(im)
            if abs(angle) < self.min_angle:
                out = im.copy()
            else:
                logger.debug("Deskewing %s by %.2f degrees", src.name, angle)
                fill = (255, 255, 255) if im.mode == "RGB" else 255
                resample = Image.Resampling.NEAREST if im.mode == "1" else Image.Resampling.BICUBIC
                out = im.rotate(angle, resample=resample, expand=False, fillcolor=fill)
        dest.parent.mkdir(parents=True, exist_ok=True)
        out.save(dest)
        return dest


class UnpaperCleaner(BaseCleaner):
    """Removes scanning noise with unpaper; unpaper reads and writes PNM files."""

    def __init__(self, cmd: Optional[str] = None):
        self.cmd = cmd or resolve_tool_cmd("unpaper") or "unpaper"

    def clean(self, src: Path, dest: Path, dpi: int) -> Path:
        args = [
            self.cmd, "--dpi", str(dpi), "--mask-scan-size", "100",
            "--no-deskew", "--no-grayfilter", "--no-blackfilter",
            "--no-mask-center", "--no-border-align",
            str(src), str(dest),
        ]
        try:
            subprocess.run(args, check=True, stdout=subprocess.DEVNULL,
                           stderr=subprocess.PIPE, text=True)
        except subprocess.CalledProcessError as e:
            raise RuntimeError(f"unpaper exited with {e.returncode}: {(e.stderr or '').strip()}") from e
        return dest
