# parapdfa/ocr_backends/base.py
from pathlib import Path
from typing import Sequence
from abc import ABC, abstractmethod

class BaseOCREngine(ABC):
    @abstractmethod
    def recognize(self, image_path: Path, dest: Path, languages: Sequence[str],
                  dpi: int, config_files: Sequence[str] = ()) -> Path:
        """Recognize one page image and write the hOCR result to dest."""
        pass
