from __future__ import annotations

import subprocess

import pytest
from PIL import Image, ImageDraw

from parapdfa import preprocess
from parapdfa.preprocess import ProjectionDeskewer, UnpaperCleaner


def _lined_page(angle: float) -> Image.Image:
    im = Image.new("L", (800, 1000), color=255)
    draw = ImageDraw.Draw(im)
    for y in range(100, 900, 40):
        draw.rectangle((100, y, 700, y + 8), fill=0)
    return im.rotate(angle, resample=Image.Resampling.BICUBIC, fillcolor=255)


def test_find_angle_undoes_rotation():
    angle = ProjectionDeskewer(step=0.5).find_angle(_lined_page(3.0))
    assert angle == pytest.approx(-3.0, abs=0.5)


def test_blank_page_is_not_rotated():
    assert ProjectionDeskewer().find_angle(Image.new("L", (200, 200), color=255)) == 0.0


def test_deskew_keeps_size_and_mode(tmp_path):
    src = tmp_path / "0001.pgm"
    _lined_page(2.0).save(src)
    dest = ProjectionDeskewer(step=0.5).deskew(src, tmp_path / "0001.deskewed.pgm", 300)
    with Image.open(dest) as im:
        assert im.size == (800, 1000)
        assert im.mode == "L"


def test_unpaper_command_line(tmp_path, monkeypatch):
    calls = []

    def fake_run(args, **kwargs):
        calls.append(args)
        return subprocess.CompletedProcess(args, 0)

    monkeypatch.setattr(preprocess.subprocess, "run", fake_run)
    UnpaperCleaner(cmd="unpaper").clean(tmp_path / "in.pgm", tmp_path / "out.pgm", 300)
    assert calls[0][:3] == ["unpaper", "--dpi", "300"]
    assert calls[0][-2:] == [str(tmp_path / "in.pgm"), str(tmp_path / "out.pgm")]


def test_unpaper_failure_is_raised(tmp_path, monkeypatch):
    def fake_run(args, **kwargs):
        raise subprocess.CalledProcessError(1, args, stderr="unpaper: bad input")

    monkeypatch.setattr(preprocess.subprocess, "run", fake_run)
    with pytest.raises(RuntimeError, match="bad input"):
        UnpaperCleaner(cmd="unpaper").clean(tmp_path / "in.pgm", tmp_path / "out.pgm", 300)
