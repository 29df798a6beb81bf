# src/parapdfa/hocr.py
from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

_LINE_CLASSES = {"ocr_line", "ocr_header", "ocr_caption", "ocr_textfloat"}


@dataclass(frozen=True)
class BBox:
    x0: int
    y0: int
    x1: int
    y1: int

    @property
    def width(self) -> int:
        return self.x1 - self.x0

    @property
    def height(self) -> int:
        return self.y1 - self.y0


@dataclass
class HocrWord:
    text: str
    bbox: BBox
    confidence: Optional[float] = None


@dataclass
class HocrLine:
    bbox: BBox
    # baseline y = slope * (x - x0) + offset, relative to the bottom of the line box
    baseline: Tuple[float, float] = (0.0, 0.0)
    words: List[HocrWord] = field(default_factory=list)

    def baseline_at(self, x: float) -> float:
        slope, offset = self.baseline
        return self.bbox.y1 + slope * (x - self.bbox.x0) + offset


@dataclass
class HocrPage:
    bbox: Optional[BBox]
    lines: List[HocrLine] = field(default_factory=list)

    @property
    def words(self) -> List[HocrWord]:
        return [w for line in self.lines for w in line.words]


def parse_title(title: str) -> Dict[str, List[str]]:
    """'bbox 0 0 10 10; x_wconf 93' -> {'bbox': ['0','0','10','10'], 'x_wconf': ['93']}"""
    props: Dict[str, List[str]] = {}
    for chunk in (title or "").split(";"):
        parts = chunk.strip().split()
        if parts:
            props[parts[0]] = parts[1:]
    return props


def _bbox(props: Dict[str, List[str]]) -> Optional[BBox]:
    values = props.get("bbox")
    if not values or len(values) != 4:
        return None
    try:
        x0, y0, x1, y1 = (int(float(v)) for v in values)
    except ValueError:
        return None
    return BBox(x0, y0, x1, y1)


def _classes(el: ET.Element) -> set:
    return set((el.get("class") or "").split())


def _text(el: ET.Element) -> str:
    return re.sub(r"\s+", " ", "".join(el.itertext())).strip()


def parse_hocr(source: Union[str, bytes, Path]) -> HocrPage:
    """
    Parses the first page of an hOCR document (a file path, or the markup itself).
    Raises ValueError when the markup is not well-formed.
    """
    if isinstance(source, Path):
        data = source.read_bytes()
    else:
        data = source.encode("utf-8") if isinstance(source, str) else source
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise ValueError(f"Malformed hOCR: {e}") from e

    page_bbox: Optional[BBox] = None
    lines: List[HocrLine] = []
    for el in root.iter():
        classes = _classes(el)
        if "ocr_page" in classes and page_bbox is None:
            page_bbox = _bbox(parse_title(el.get("title", "")))
        elif classes & _LINE_CLASSES:
            props = parse_title(el.get("title", ""))
            bbox = _bbox(props)
            if bbox is None:
                continue
            baseline = (0.0, 0.0)
            if len(props.get("baseline", [])) == 2:
                baseline = (float(props["baseline"][0]), float(props["baseline"][1]))
            line = HocrLine(bbox=bbox, baseline=baseline)
            for word_el in el.iter():
                if "ocrx_word" not in _classes(word_el):
                    continue
                text = _text(word_el)
                word_props = parse_title(word_el.get("title", ""))
                word_bbox = _bbox(word_props)
                if not text or word_bbox is None:
                    continue
                conf = word_props.get("x_wconf")
                line.words.append(HocrWord(text=text, bbox=word_bbox,
                                           confidence=float(conf[0]) if conf else None))
            lines.append(line)

    return HocrPage(bbox=page_bbox, lines=lines)
