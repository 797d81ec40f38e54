"""Data models passed between discovery, planning and markup."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .errors import VariantCellError


@dataclass(frozen=True)
class DiscoveredImage:
    """A source image found under the input root."""

    absolute_path: Path
    relative_path: Path = field(compare=False)
    file_name: str = field(compare=False)
    sub_directory: Path = field(compare=False)

    @property
    def stem(self) -> str:
        return Path(self.file_name).stem

    @classmethod
    def from_path(cls, path: Path, root: Path) -> "DiscoveredImage":
        rel = path.relative_to(root)
        return cls(
            absolute_path=path.absolute(),
            relative_path=rel,
            file_name=path.name,
            sub_directory=rel.parent,
        )


@dataclass(frozen=True)
class MaterializedVariant:
    source_relative_path: str
    width: int  # target width, used in the file name and the srcset descriptor
    format: str
    output_relative_path: str  # POSIX, relative to the output root
    sub_directory: str
    pixel_width: int
    byte_size: int


@dataclass
class ImageResult:
    source_relative_path: str
    sub_directory: str
    variants: List[MaterializedVariant] = field(default_factory=list)
    failures: List[VariantCellError] = field(default_factory=list)
    intrinsic_size: Optional[Tuple[int, int]] = None

    def by_format(self) -> Dict[str, List[MaterializedVariant]]:
        """Variants grouped by format, each group sorted by ascending width."""
        groups: Dict[str, List[MaterializedVariant]] = {}
        for v in self.variants:
            groups.setdefault(v.format, []).append(v)
        for group in groups.values():
            group.sort(key=lambda v: v.width)
        return groups


@dataclass
class RunReport:
    input_root: Path
    output_root: Path
    results: List[ImageResult] = field(default_factory=list)
    markup_path: Optional[Path] = None  # None when nothing was written
    cancelled: bool = False

    @property
    def image_count(self) -> int:
        return len(self.results)

    @property
    def variant_count(self) -> int:
        return sum(len(r.variants) for r in self.results)

    @property
    def failure_count(self) -> int:
        return sum(len(r.failures) for r in self.results)

    def summary_lines(self) -> List[str]:
        lines = [
            f"Images processed: {self.image_count}",
            f"Variants generated: {self.variant_count}",
        ]
        if self.failure_count:
            lines.append(f"Failed variants: {self.failure_count}")
        lines.append(f"Output directory: {self.output_root}")
        if self.markup_path is not None:
            lines.append(f"Snippets: {self.markup_path}")
        if self.cancelled:
            lines.append("Run cancelled before all images were processed")
        return lines
