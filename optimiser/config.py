"""Configuration values for a run: widths, formats and paths.

Everything here is immutable and passed explicitly into the pipeline, so two
runs with different settings can share a process.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import ConfigError

# name -> (Pillow format, MIME type)
FORMATS: Dict[str, Tuple[str, str]] = {
    "webp": ("WEBP", "image/webp"),
    "jpeg": ("JPEG", "image/jpeg"),
    "png": ("PNG", "image/png"),
    "avif": ("AVIF", "image/avif"),
}
FORMAT_ALIASES = {"jpg": "jpeg"}

DEFAULT_INPUT_DIR = "images"
DEFAULT_OUTPUT_DIR = "images-optimized"
DEFAULT_MARKUP_FILENAME = "html-snippets.txt"
DEFAULT_WIDTHS = (400, 800, 1200)
DEFAULT_QUALITY = {"webp": 80, "jpeg": 85}
DEFAULT_ALT_TEXT = "Image description"


def normalise_format_name(name: str) -> str:
    key = name.strip().lower()
    key = FORMAT_ALIASES.get(key, key)
    if key not in FORMATS:
        raise ConfigError(f"Unsupported output format {name!r}. Choose from: {', '.join(sorted(FORMATS))}")
    return key


@dataclass(frozen=True)
class OutputFormat:
    name: str
    quality: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", normalise_format_name(self.name))
        if isinstance(self.quality, bool) or not isinstance(self.quality, int):
            raise ConfigError(f"Quality for {self.name} must be an integer, got {self.quality!r}")
        if not 1 <= self.quality <= 100:
            raise ConfigError(f"Quality for {self.name} must be between 1 and 100, got {self.quality}")

    @property
    def pil_format(self) -> str:
        return FORMATS[self.name][0]

    @property
    def mime_type(self) -> str:
        return FORMATS[self.name][1]

    def __str__(self) -> str:
        return f"{self.name}@{self.quality}"


def parse_format(value: str) -> OutputFormat:
    """Parse "webp:80" (or bare "webp", using the default quality for it)."""
    name, sep, quality = value.partition(":")
    if not name.strip():
        raise ConfigError(f"Invalid format {value!r}. Example: webp:80")
    if not sep:
        key = normalise_format_name(name)
        return OutputFormat(key, DEFAULT_QUALITY.get(key, 80))
    try:
        q = int(quality)
    except ValueError:
        raise ConfigError(f"Invalid quality in {value!r}. Example: webp:80") from None
    return OutputFormat(name, q)


@dataclass(frozen=True)
class VariantSpec:
    """Target widths x output formats.

    Widths are kept sorted ascending. Formats keep their configured order: the
    first is the most preferred, the last is the fallback format.
    """

    widths: Tuple[int, ...] = DEFAULT_WIDTHS
    formats: Tuple[OutputFormat, ...] = field(
        default_factory=lambda: tuple(OutputFormat(n, q) for n, q in DEFAULT_QUALITY.items())
    )

    def __post_init__(self) -> None:
        widths = tuple(self.widths)
        formats = tuple(self.formats)
        if not widths:
            raise ConfigError("At least one target width is required")
        for w in widths:
            if isinstance(w, bool) or not isinstance(w, int) or w <= 0:
                raise ConfigError(f"Target widths must be positive integers, got {w!r}")
        if len(set(widths)) != len(widths):
            raise ConfigError(f"Duplicate target widths: {list(widths)}")
        if not formats:
            raise ConfigError("At least one output format is required")
        names = [f.name for f in formats]
        if len(set(names)) != len(names):
            raise ConfigError(f"Duplicate output formats: {names}")
        object.__setattr__(self, "widths", tuple(sorted(widths)))
        object.__setattr__(self, "formats", formats)

    @property
    def default_width(self) -> int:
        """Middle configured width, used for the fallback <img>."""
        return self.widths[len(self.widths) // 2]

    @property
    def fallback_format(self) -> OutputFormat:
        return self.formats[-1]

    @property
    def cell_count(self) -> int:
        return len(self.widths) * len(self.formats)


@dataclass(frozen=True)
class PipelineConfig:
    input_root: Path
    output_root: Path
    spec: VariantSpec = field(default_factory=VariantSpec)
    markup_path: Path = Path(DEFAULT_MARKUP_FILENAME)
    url_prefix: Optional[str] = None
    alt_text: str = DEFAULT_ALT_TEXT
    workers: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "input_root", Path(self.input_root))
        object.__setattr__(self, "output_root", Path(self.output_root))
        object.__setattr__(self, "markup_path", Path(self.markup_path))
        if self.workers is not None and self.workers < 1:
            raise ConfigError(f"Worker count must be at least 1, got {self.workers}")

    @property
    def prefix(self) -> str:
        """URL prefix for markup paths; defaults to the output directory name."""
        if self.url_prefix is not None:
            return self.url_prefix.rstrip("/")
        return self.output_root.name

    @property
    def max_workers(self) -> int:
        return self.workers or os.cpu_count() or 4

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PipelineConfig":
        """Build a config from JSON-style values; missing keys take defaults."""
        unknown = set(data) - CONFIG_KEYS
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        spec_kwargs: Dict[str, Any] = {}
        if data.get("widths") is not None:
            spec_kwargs["widths"] = _coerce_widths(data["widths"])
        if data.get("formats") is not None:
            spec_kwargs["formats"] = _coerce_formats(data["formats"])
        threads = data.get("threads")
        if threads is not None and (isinstance(threads, bool) or not isinstance(threads, int)):
            raise ConfigError(f"threads must be an integer, got {threads!r}")
        return cls(
            input_root=Path(data.get("input") or DEFAULT_INPUT_DIR),
            output_root=Path(data.get("output") or DEFAULT_OUTPUT_DIR),
            spec=VariantSpec(**spec_kwargs),
            markup_path=Path(data.get("markup") or DEFAULT_MARKUP_FILENAME),
            url_prefix=data.get("url_prefix"),
            alt_text=data.get("alt") if data.get("alt") is not None else DEFAULT_ALT_TEXT,
            workers=threads,
        )


CONFIG_KEYS = {"input", "output", "widths", "formats", "markup", "url_prefix", "alt", "threads"}


def _coerce_widths(value: Any) -> Tuple[int, ...]:
    if isinstance(value, str):
        value = [x for x in value.split(",") if x.strip()]
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"widths must be a list of integers, got {value!r}")
    try:
        return tuple(int(w) for w in value)
    except (TypeError, ValueError):
        raise ConfigError(f"widths must be a list of integers, got {value!r}") from None


def _coerce_formats(value: Any) -> Tuple[OutputFormat, ...]:
    # {"webp": 80, "jpeg": 85} | [{"name": "webp", "quality": 80}] | ["webp:80"]
    if isinstance(value, Mapping):
        return tuple(OutputFormat(str(name), q) for name, q in value.items())
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"formats must be a mapping or a list, got {value!r}")
    out: List[OutputFormat] = []
    for item in value:
        if isinstance(item, OutputFormat):
            out.append(item)
        elif isinstance(item, str):
            out.append(parse_format(item))
        elif isinstance(item, Mapping) and "name" in item:
            name = normalise_format_name(str(item["name"]))
            out.append(OutputFormat(name, item.get("quality", DEFAULT_QUALITY.get(name, 80))))
        else:
            raise ConfigError(f"Invalid format entry {item!r}")
    return tuple(out)


def load_config_file(json_path: Path) -> Dict[str, Any]:
    """
    Read an optional JSON config. Example:
      {
        "input": "images",
        "output": "images-optimized",
        "widths": [400, 800, 1200],
        "formats": {"webp": 80, "jpeg": 85}
      }
    """
    try:
        data = json.loads(Path(json_path).read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read config {json_path}: {e}") from e
    except ValueError as e:
        raise ConfigError(f"Invalid JSON in {json_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config {json_path} must contain a JSON object")
    return data


def merge_overrides(base: Mapping[str, Any], overrides: Iterable[Tuple[str, Any]]) -> Dict[str, Any]:
    """Overlay non-None values (e.g. CLI flags) on top of file values."""
    merged = dict(base)
    for key, value in overrides:
        if value is not None:
            merged[key] = value
    return merged
