"""Build <picture> snippets from planned variants."""

import html
from pathlib import PurePosixPath
from typing import Iterable, List, Optional

from .config import DEFAULT_ALT_TEXT, VariantSpec
from .models import ImageResult, MaterializedVariant

HEADER = "<!-- Generated responsive image snippets -->"
SRCSET_SEP = ",\n          "


def _url(prefix: str, rel: str) -> str:
    return "/".join(p for p in (prefix.rstrip("/"), rel) if p)


def _attr(value: str) -> str:
    return html.escape(value, quote=True)


def sizes_attribute(widths: Iterable[int]) -> str:
    """
    Breakpoints halfway between consecutive widths, e.g.
    [400, 800, 1200] -> "(max-width: 600px) 400px, (max-width: 1000px) 800px, 1200px"
    """
    ws = sorted(widths)
    parts = [f"(max-width: {(w + nxt) // 2}px) {w}px" for w, nxt in zip(ws, ws[1:])]
    parts.append(f"{ws[-1]}px")
    return ", ".join(parts)


def srcset(variants: Iterable[MaterializedVariant], prefix: str) -> str:
    ordered = sorted(variants, key=lambda v: v.width)
    return SRCSET_SEP.join(f"{_url(prefix, v.output_relative_path)} {v.width}w" for v in ordered)


def choose_fallback(result: ImageResult, spec: VariantSpec) -> str:
    """
    Output-relative path for the fallback <img src>.

    Prefers the middle width in the last format. If that cell failed, takes the
    nearest materialized width in the same format, then in any format. Only an
    image with no variants at all gets the conventional name, which does not exist on disk.
    """
    target = spec.default_width
    fmt = spec.fallback_format.name

    def nearest(candidates: List[MaterializedVariant]) -> Optional[MaterializedVariant]:
        if not candidates:
            return None
        # ties go to the larger width
        return min(candidates, key=lambda v: (abs(v.width - target), -v.width))

    pick = nearest([v for v in result.variants if v.format == fmt])
    if pick is None:
        formats = [f.name for f in spec.formats]
        for name in reversed(formats):
            pick = nearest([v for v in result.variants if v.format == name])
            if pick is not None:
                break
    if pick is not None:
        return pick.output_relative_path

    stem = PurePosixPath(result.source_relative_path).stem
    name = f"{stem}-{target}w.{fmt}"
    return f"{result.sub_directory}/{name}" if result.sub_directory else name


def build_block(
    result: ImageResult,
    spec: VariantSpec,
    prefix: str,
    alt_text: str = DEFAULT_ALT_TEXT,
) -> str:
    groups = result.by_format()
    lines = [f"<!-- {result.source_relative_path} -->", "<picture>"]
    for fmt in spec.formats:
        variants = groups.get(fmt.name)
        if not variants:
            continue
        lines.append(f'  <source type="{fmt.mime_type}"')
        lines.append(f'          srcset="{_attr(srcset(variants, prefix))}">')
    lines.append(f'  <img src="{_attr(_url(prefix, choose_fallback(result, spec)))}"')
    lines.append(f'       alt="{_attr(alt_text)}"')
    lines.append('       loading="lazy"')
    lines.append(f'       sizes="{sizes_attribute(spec.widths)}">')
    lines.append("</picture>")
    return "\n".join(lines)


def build(
    results: Iterable[ImageResult],
    spec: VariantSpec,
    prefix: str,
    alt_text: str = DEFAULT_ALT_TEXT,
) -> str:
    """Whole snippets document: header, then one block per result in input order."""
    out = [HEADER + "\n\n"]
    for result in results:
        out.append(build_block(result, spec, prefix, alt_text) + "\n\n")
    return "".join(out)
