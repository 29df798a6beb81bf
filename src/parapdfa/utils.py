# src/parapdfa/utils.py
from __future__ import annotations

import os
import platform
import shutil
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from slugify import slugify


# Common install locations per OS, tried after the environment override and PATH
_FALLBACK_DIRS: Dict[str, List[str]] = {
    "Windows": [
        r"C:\Program Files\Tesseract-OCR",
        r"C:\Program Files (x86)\Tesseract-OCR",
        r"C:\Program Files\gs\bin",
    ],
    "Darwin": [
        "/opt/homebrew/bin",   # Apple Silicon Homebrew
        "/usr/local/bin",      # Intel Homebrew/MacPorts
    ],
    "Linux": [
        "/usr/bin",
        "/usr/local/bin",
        "/snap/bin",
    ],
}


def resolve_tool_cmd(name: str) -> Optional[str]:
    """
    Locate an external executable.
    Order: PARAPDFA_<NAME>_CMD env override, PATH, common locations.
    """
    # 1) explicit env override
    cmd = os.getenv(f"PARAPDFA_{name.upper()}_CMD")
    if cmd and Path(cmd).exists():
        return cmd

    # 2) look on PATH
    cmd = shutil.which(name)
    if cmd:
        return cmd

    # 3) common fallbacks by OS
    system = platform.system()
    exe = f"{name}.exe" if system == "Windows" else name
    for folder in _FALLBACK_DIRS.get(system, _FALLBACK_DIRS["Linux"]):
        p = Path(folder) / exe
        if p.exists():
            return str(p)
    return None


def run_prefix(input_path: Path, now: Optional[datetime] = None) -> str:
    """
    Prefix for the run workspace, made of date, time and the input name.
    """
    now = now or datetime.now()
    stem = slugify(Path(input_path).stem)[:60] or "input"
    return f"{now:%Y%m%d_%H%M}.{stem}."


def is_nonempty_file(path: Optional[Path]) -> bool:
    if path is None:
        return False
    try:
        return Path(path).is_file() and Path(path).stat().st_size > 0
    except OSError:
        return False
