import io
import subprocess
from pathlib import Path

import pytest
from PIL import Image

from optimiser.codec import (
    MagickCodec,
    PillowCodec,
    build_convert_cmd,
    build_identify_cmd,
    find_imagemagick_bin,
    get_codec,
)
from optimiser.config import OutputFormat
from optimiser.errors import CodecError

from conftest import write_broken_png, write_image

WEBP = OutputFormat("webp", 80)
JPEG = OutputFormat("jpeg", 85)


def decode(data: bytes) -> Image.Image:
    im = Image.open(io.BytesIO(data))
    im.load()
    return im


def test_pillow_intrinsic_size(tmp_path):
    src = write_image(tmp_path / "a.png", 321, 123)
    assert PillowCodec().intrinsic_size(src) == (321, 123)


def test_pillow_resize_keeps_aspect_ratio(tmp_path):
    src = write_image(tmp_path / "a.jpg", 1000, 333)
    im = decode(PillowCodec().encode(src, 400, JPEG))
    assert im.size == (400, 133)
    assert im.format == "JPEG"


def test_pillow_native_size_when_width_is_none(tmp_path):
    src = write_image(tmp_path / "a.jpg", 250, 100)
    im = decode(PillowCodec().encode(src, None, WEBP))
    assert im.size == (250, 100)
    assert im.format == "WEBP"


def test_pillow_never_upscales(tmp_path):
    src = write_image(tmp_path / "a.jpg", 250, 100)
    assert decode(PillowCodec().encode(src, 800, WEBP)).size == (250, 100)


def test_pillow_encoding_is_deterministic(tmp_path):
    src = write_image(tmp_path / "a.png", 640, 480)
    codec = PillowCodec()
    assert codec.encode(src, 320, JPEG) == codec.encode(src, 320, JPEG)


def test_pillow_palette_gif_to_jpeg(tmp_path):
    src = tmp_path / "a.gif"
    Image.new("RGB", (60, 40), (10, 200, 30)).convert("P").save(src)
    assert decode(PillowCodec().encode(src, 30, JPEG)).mode == "RGB"


def test_pillow_errors_become_codec_errors(tmp_path):
    bad = tmp_path / "bad.png"
    bad.write_bytes(b"\x89PNG garbage")
    codec = PillowCodec()
    with pytest.raises(CodecError):
        codec.intrinsic_size(bad)
    with pytest.raises(CodecError):
        codec.encode(bad, 100, WEBP)
    with pytest.raises(CodecError):
        codec.intrinsic_size(tmp_path / "missing.png")


def test_convert_cmd_shrinks_only():
    cmd = build_convert_cmd("convert", False, Path("in/a.png"), 800, WEBP)
    assert cmd[0] == "convert"
    assert cmd[1] == "in/a.png[0]"
    assert cmd[cmd.index("-resize") + 1] == "800x>"
    assert cmd[cmd.index("-quality") + 1] == "80"
    assert "webp:method=6" in cmd
    assert cmd[-1] == "webp:-"


def test_convert_cmd_native_jpeg_with_wrapper():
    cmd = build_convert_cmd("magick", True, Path("a.png"), None, JPEG)
    assert cmd[:2] == ["magick", "convert"]
    assert "-resize" not in cmd
    assert "-interlace" in cmd
    assert cmd[-1] == "jpeg:-"


def test_identify_cmd():
    assert build_identify_cmd("convert", False, Path("a.jpg")) == ["identify", "-format", "%w %h", "a.jpg[0]"]
    assert build_identify_cmd("magick", True, Path("a.jpg"))[:2] == ["magick", "identify"]


class FakeRun:
    def __init__(self, returncode=0, stdout=b"", stderr=b""):
        self.result = subprocess.CompletedProcess([], returncode, stdout, stderr)
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        return self.result


def test_magick_codec_reads_stdout(monkeypatch):
    fake = FakeRun(stdout=b"1200 800")
    monkeypatch.setattr(subprocess, "run", fake)
    codec = MagickCodec("convert", False)

    assert codec.intrinsic_size(Path("a.jpg")) == (1200, 800)
    assert codec.encode(Path("a.jpg"), 400, WEBP) == b"1200 800"
    assert fake.calls[1][-1] == "webp:-"


def test_magick_codec_failure(monkeypatch):
    monkeypatch.setattr(subprocess, "run", FakeRun(returncode=1, stderr=b"no decode delegate"))
    codec = MagickCodec("convert", False)
    with pytest.raises(CodecError, match="no decode delegate"):
        codec.encode(Path("a.jpg"), 400, WEBP)
    with pytest.raises(CodecError):
        codec.intrinsic_size(Path("a.jpg"))


def test_find_imagemagick_bin_missing(monkeypatch):
    def missing(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(subprocess, "run", missing)
    with pytest.raises(CodecError):
        find_imagemagick_bin()


def test_find_imagemagick_bin_prefers_explicit(monkeypatch):
    monkeypatch.setattr(subprocess, "run", FakeRun(stdout="Version: ImageMagick 7.1", stderr=""))
    assert find_imagemagick_bin("/opt/bin/magick") == ("/opt/bin/magick", True)


def test_get_codec():
    assert isinstance(get_codec("pillow"), PillowCodec)
    with pytest.raises(CodecError):
        get_codec("sharp")


def test_pillow_broken_png_chunk_becomes_codec_error(tmp_path):
    bad = write_broken_png(tmp_path / "c.png")
    with pytest.raises(CodecError):
        PillowCodec().encode(bad, 32, WEBP)
