from .base import BaseOCREngine

__all__ = ["BaseOCREngine"]
