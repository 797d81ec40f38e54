"""
Image codecs: read intrinsic size, resize and encode one variant to bytes.

PillowCodec is the default. MagickCodec shells out to ImageMagick
("convert"/"magick") for setups that prefer it.
"""

import io
import struct
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Tuple

from PIL import Image

from .config import OutputFormat
from .errors import CodecError

# Truncated or corrupt files surface as SyntaxError/EOFError/struct.error from some plugins.
PIL_ERRORS = (OSError, ValueError, SyntaxError, EOFError, struct.error, Image.DecompressionBombError)


class ImageCodec(ABC):
    name = "codec"

    @abstractmethod
    def intrinsic_size(self, path: Path) -> Tuple[int, int]:
        """Return (width, height) of the source, first frame only."""

    @abstractmethod
    def encode(self, path: Path, width: Optional[int], fmt: OutputFormat) -> bytes:
        """
        Encode the source as fmt at fmt.quality.
        width=None keeps the native size; otherwise resize to that width keeping aspect ratio.
        """


# ---------- Pillow ----------

def _flatten(im: Image.Image, background=(255, 255, 255)) -> Image.Image:
    rgba = im.convert("RGBA")
    base = Image.new("RGB", rgba.size, background)
    base.paste(rgba, mask=rgba.getchannel("A"))
    return base


def prepare_mode(im: Image.Image, fmt: OutputFormat) -> Image.Image:
    has_alpha = ("A" in im.mode) or (im.info.get("transparency") is not None)
    if fmt.name == "jpeg":
        if has_alpha:
            return _flatten(im)
        return im if im.mode in ("RGB", "L") else im.convert("RGB")
    if fmt.name == "png":
        return im if im.mode in ("RGB", "RGBA", "L", "LA", "P") else im.convert("RGBA" if has_alpha else "RGB")
    # webp / avif
    if has_alpha:
        return im if im.mode == "RGBA" else im.convert("RGBA")
    return im if im.mode == "RGB" else im.convert("RGB")


def save_options(fmt: OutputFormat) -> dict:
    if fmt.name == "jpeg":
        return {"quality": fmt.quality, "optimize": True, "progressive": True}
    if fmt.name == "webp":
        return {"quality": fmt.quality, "method": 6}
    if fmt.name == "png":
        return {"optimize": True}
    return {"quality": fmt.quality}


class PillowCodec(ImageCodec):
    name = "pillow"

    def intrinsic_size(self, path: Path) -> Tuple[int, int]:
        try:
            with Image.open(path) as im:
                return im.size
        except PIL_ERRORS as e:
            raise CodecError(f"Cannot read {path}: {e}") from e

    def encode(self, path: Path, width: Optional[int], fmt: OutputFormat) -> bytes:
        try:
            with Image.open(path) as im:
                im.load()  # first frame
                out = im
                if width is not None and width < im.width:
                    height = max(1, round(im.height * width / im.width))
                    out = im.resize((width, height), Image.LANCZOS)
                out = prepare_mode(out, fmt)
                buf = io.BytesIO()
                out.save(buf, format=fmt.pil_format, **save_options(fmt))
                return buf.getvalue()
        except KeyError as e:
            # Pillow raises KeyError for a format it was built without
            raise CodecError(f"{fmt.name} encoding is not available in this Pillow build") from e
        except PIL_ERRORS as e:
            raise CodecError(f"Cannot encode {path} as {fmt.name}: {e}") from e


# ---------- ImageMagick ----------

def find_imagemagick_bin(explicit: Optional[str] = None) -> Tuple[str, bool]:
    candidates = []
    if explicit:
        candidates.append(explicit)
    candidates += ["convert", "magick"]
    for exe in candidates:
        try:
            out = subprocess.run([exe, "-version"], capture_output=True, text=True)
        except OSError:
            continue
        if out.returncode == 0 and ("ImageMagick" in out.stdout or "ImageMagick" in out.stderr):
            requires_wrapper = Path(exe).name.startswith("magick")
            return exe, requires_wrapper
    raise CodecError("Could not find ImageMagick. Install it or pass --imagemagick-bin")


def build_convert_cmd(
    im_bin: str,
    requires_wrapper: bool,
    src: Path,
    target_width: Optional[int],
    fmt: OutputFormat,
) -> List[str]:
    cmd = [im_bin, "convert"] if requires_wrapper else [im_bin]
    cmd += [f"{src}[0]"]
    if target_width is not None:
        # ">" shrinks only
        cmd += ["-resize", f"{target_width}x>"]
    cmd += ["-strip"]
    if fmt.name == "jpeg":
        cmd += ["-background", "white", "-alpha", "remove", "-interlace", "Plane"]
    cmd += ["-quality", str(fmt.quality)]
    if fmt.name == "webp":
        cmd += ["-define", "webp:method=6"]
    cmd += [f"{fmt.name}:-"]
    return cmd


def build_identify_cmd(im_bin: str, requires_wrapper: bool, src: Path) -> List[str]:
    if requires_wrapper:
        return [im_bin, "identify", "-format", "%w %h", f"{src}[0]"]
    base = "identify" if Path(im_bin).name == "convert" else im_bin
    return [base, "-format", "%w %h", f"{src}[0]"]


class MagickCodec(ImageCodec):
    name = "magick"

    def __init__(self, im_bin: Optional[str] = None, requires_wrapper: Optional[bool] = None):
        if im_bin is None or requires_wrapper is None:
            im_bin, requires_wrapper = find_imagemagick_bin(im_bin)
        self.im_bin = im_bin
        self.requires_wrapper = requires_wrapper

    def _run(self, cmd: List[str]) -> subprocess.CompletedProcess:
        try:
            proc = subprocess.run(cmd, capture_output=True)
        except OSError as e:
            raise CodecError(f"Cannot run {cmd[0]}: {e}") from e
        if proc.returncode != 0:
            msg = proc.stderr.decode("utf-8", "replace").strip() or f"exit status {proc.returncode}"
            raise CodecError(msg)
        return proc

    def intrinsic_size(self, path: Path) -> Tuple[int, int]:
        proc = self._run(build_identify_cmd(self.im_bin, self.requires_wrapper, path))
        parts = proc.stdout.decode("ascii", "replace").strip().split()
        if len(parts) == 2 and parts[0].isdigit() and parts[1].isdigit():
            return int(parts[0]), int(parts[1])
        raise CodecError(f"Could not read size of {path}")

    def encode(self, path: Path, width: Optional[int], fmt: OutputFormat) -> bytes:
        proc = self._run(build_convert_cmd(self.im_bin, self.requires_wrapper, path, width, fmt))
        if not proc.stdout:
            raise CodecError(f"ImageMagick produced no output for {path}")
        return proc.stdout


def get_codec(name: str = "pillow", im_bin: Optional[str] = None) -> ImageCodec:
    if name == "pillow":
        return PillowCodec()
    if name == "magick":
        return MagickCodec(im_bin)
    raise CodecError(f"Unknown codec {name!r}")
