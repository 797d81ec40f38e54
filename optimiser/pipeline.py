"""
Run orchestration: discover -> plan each image on a worker pool -> write snippets.
"""

import concurrent.futures as cf
import logging
import os
import threading
from pathlib import Path
from typing import List, Optional

from . import markup
from .codec import ImageCodec, PillowCodec
from .config import PipelineConfig
from .discovery import discover
from .errors import MarkupWriteError
from .models import DiscoveredImage, ImageResult, RunReport
from .planner import plan, temp_sibling

logger = logging.getLogger(__name__)


def write_text_atomic(target: Path, text: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = temp_sibling(target)
    try:
        with open(tmp, "x", encoding="utf-8", newline="") as f:
            f.write(text)
        os.replace(tmp, target)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def write_markup(path: Path, text: str) -> None:
    try:
        write_text_atomic(path, text)
    except OSError as e:
        raise MarkupWriteError(f"Could not write snippets to {path}: {e}") from e


def plan_all(
    images: List[DiscoveredImage],
    config: PipelineConfig,
    codec: ImageCodec,
    cancel: Optional[threading.Event] = None,
) -> List[Optional[ImageResult]]:
    """Plan every image; results are indexed by discovery order. Skipped (cancelled) images stay None."""
    results: List[Optional[ImageResult]] = [None] * len(images)

    def work(image: DiscoveredImage) -> Optional[ImageResult]:
        if cancel is not None and cancel.is_set():
            return None
        return plan(image, config.spec, config.output_root, codec, cancel)

    with cf.ThreadPoolExecutor(max_workers=config.max_workers) as ex:
        futures = {ex.submit(work, img): i for i, img in enumerate(images)}
        for fut in cf.as_completed(futures):
            results[futures[fut]] = fut.result()
    return results


def run(
    config: PipelineConfig,
    codec: Optional[ImageCodec] = None,
    cancel: Optional[threading.Event] = None,
) -> RunReport:
    codec = codec or PillowCodec()
    report = RunReport(input_root=config.input_root, output_root=config.output_root)

    images = discover(config.input_root, exclude=[config.output_root])
    if not images:
        logger.warning("No images found in %s, nothing to do", config.input_root)
        return report

    spec = config.spec
    logger.info("Found %d image(s) in %s", len(images), config.input_root)
    logger.info(
        "Variants: %s px x %s, threads=%d",
        list(spec.widths),
        ", ".join(str(f) for f in spec.formats),
        config.max_workers,
    )

    planned = plan_all(images, config, codec, cancel)
    report.results = [r for r in planned if r is not None]

    if cancel is not None and cancel.is_set():
        report.cancelled = True
        logger.warning("Run cancelled; snippets not written (%d of %d images planned)", len(report.results), len(images))
        return report

    text = markup.build(report.results, spec, config.prefix, config.alt_text)
    write_markup(config.markup_path, text)
    report.markup_path = config.markup_path
    logger.info("Snippets saved to %s", config.markup_path)
    logger.info(
        "Done: %d image(s), %d variant(s), %d failure(s), output %s",
        report.image_count,
        report.variant_count,
        report.failure_count,
        config.output_root,
    )
    return report


def optimise_single(
    image_path: Path,
    config: PipelineConfig,
    codec: Optional[ImageCodec] = None,
) -> ImageResult:
    """Plan one explicit image into config.output_root, without discovery.

    Raises FileNotFoundError when image_path is not a file.
    """
    path = Path(image_path)
    if not path.is_file():
        raise FileNotFoundError(f"Image not found: {image_path}")
    absolute = path.resolve()
    try:
        relative = absolute.relative_to(Path.cwd().resolve())
    except ValueError:
        relative = Path(absolute.name)
    image = DiscoveredImage(
        absolute_path=absolute,
        relative_path=relative,
        file_name=absolute.name,
        sub_directory=Path(""),
    )
    return plan(image, config.spec, config.output_root, codec or PillowCodec())
