"""
Per-image variant planning: widths x formats, resize-or-pass-through, encode, write.

A failing cell is logged and recorded on the result; the remaining cells still run.
"""

import logging
import os
import threading
import uuid
from pathlib import Path
from typing import Optional

from .codec import ImageCodec
from .config import OutputFormat, VariantSpec
from .errors import VariantCellError
from .models import DiscoveredImage, ImageResult, MaterializedVariant

logger = logging.getLogger(__name__)


def variant_filename(stem: str, width: int, fmt: OutputFormat) -> str:
    return f"{stem}-{width}w.{fmt.name}"


def target_width_for(intrinsic_width: int, width: int) -> Optional[int]:
    """Width to resize to, or None to encode at native size (never upscale)."""
    return width if intrinsic_width > width else None


def temp_sibling(target: Path) -> Path:
    # Unique per writer; opened with "x" so the file gets normal umask permissions.
    return target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")


def write_bytes_atomic(target: Path, data: bytes) -> None:
    tmp = temp_sibling(target)
    try:
        with open(tmp, "xb") as f:
            f.write(data)
        os.replace(tmp, target)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def _posix(p: Path) -> str:
    s = p.as_posix()
    return "" if s == "." else s


def plan(
    image: DiscoveredImage,
    spec: VariantSpec,
    output_root: Path,
    codec: ImageCodec,
    cancel: Optional[threading.Event] = None,
) -> ImageResult:
    source = image.relative_path.as_posix()
    sub_dir = _posix(image.sub_directory)
    result = ImageResult(source_relative_path=source, sub_directory=sub_dir)
    out_dir = Path(output_root) / image.sub_directory

    logger.info("Processing: %s", source)
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        # Every cell would fail the same way; record them all.
        for width in spec.widths:
            for fmt in spec.formats:
                _record_failure(result, source, width, fmt, e)
        return result

    for width in spec.widths:
        for fmt in spec.formats:
            if cancel is not None and cancel.is_set():
                logger.info("Cancelled: %s stops after %d variant(s)", source, len(result.variants))
                return result
            filename = variant_filename(image.stem, width, fmt)
            dst = out_dir / filename
            try:
                intrinsic = codec.intrinsic_size(image.absolute_path)
                result.intrinsic_size = intrinsic
                resize_to = target_width_for(intrinsic[0], width)
                data = codec.encode(image.absolute_path, resize_to, fmt)
                write_bytes_atomic(dst, data)
            except Exception as e:  # any failure stays inside this cell
                _record_failure(result, source, width, fmt, e)
                continue

            result.variants.append(
                MaterializedVariant(
                    source_relative_path=source,
                    width=width,
                    format=fmt.name,
                    output_relative_path="/".join(p for p in (sub_dir, filename) if p),
                    sub_directory=sub_dir,
                    pixel_width=resize_to if resize_to is not None else intrinsic[0],
                    byte_size=len(data),
                )
            )
            logger.info("  ✓ %s (%.2f KB)", filename, len(data) / 1024)

    return result


def _record_failure(result: ImageResult, source: str, width: int, fmt: OutputFormat, cause: BaseException) -> None:
    err = VariantCellError(source, width, fmt.name, cause)
    result.failures.append(err)
    logger.warning("  ✗ %s", err)
