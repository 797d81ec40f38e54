import io
from pathlib import Path
from typing import Optional, Set, Tuple

import pytest
from PIL import Image

from optimiser.codec import PillowCodec
from optimiser.config import OutputFormat, PipelineConfig, VariantSpec
from optimiser.errors import CodecError


def write_image(path: Path, width: int, height: int, mode: str = "RGB", fmt: Optional[str] = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    color = (200, 80, 40, 128) if "A" in mode else (200, 80, 40)
    Image.new(mode, (width, height), color[: len(mode)] if mode != "L" else 120).save(path, format=fmt)
    return path


class FlakyCodec(PillowCodec):
    """Pillow codec that fails chosen (file name, resize width, format) cells."""

    def __init__(self, fail: Set[Tuple[str, Optional[int], str]]):
        self.fail = fail
        self.calls = []

    def encode(self, path, width, fmt):
        self.calls.append((Path(path).name, width, fmt.name))
        if (Path(path).name, width, fmt.name) in self.fail:
            raise CodecError(f"forced failure for {Path(path).name}")
        return super().encode(path, width, fmt)


@pytest.fixture
def spec() -> VariantSpec:
    return VariantSpec(widths=(400, 800, 1200), formats=(OutputFormat("webp", 80), OutputFormat("jpeg", 85)))


@pytest.fixture
def scenario(tmp_path):
    """photos/a.jpg at 2000px wide and b.png at 300px wide."""
    root = tmp_path / "images"
    write_image(root / "photos" / "a.jpg", 2000, 1000)
    write_image(root / "b.png", 300, 200)
    return root


@pytest.fixture
def config(tmp_path, scenario, spec) -> PipelineConfig:
    return PipelineConfig(
        input_root=scenario,
        output_root=tmp_path / "images-optimized",
        spec=spec,
        markup_path=tmp_path / "html-snippets.txt",
        workers=2,
    )


def write_broken_png(path: Path) -> Path:
    """A PNG whose IDAT length is wrong; Pillow fails it with SyntaxError on load."""
    buf = io.BytesIO()
    Image.new("RGB", (64, 48), (10, 120, 200)).save(buf, format="PNG")
    data = bytearray(buf.getvalue())
    data[36] = 0x10
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(bytes(data))
    return path
