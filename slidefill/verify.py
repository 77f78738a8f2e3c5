"""Post-generation check: open a deck with python-pptx and look for leftovers.

Opening the deck through python-pptx proves the package is still readable by
a real consumer; walking every text shape then surfaces placeholder tokens a
viewer would still see on the slide.
"""

from __future__ import annotations

import io
import re
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Union

from lxml import etree
from pptx import Presentation
from pptx.exc import PackageNotFoundError
from pptx.shapes.group import GroupShape

from slidefill.config import DEFAULT_CONFIG, EngineConfig
from slidefill.errors import ArchiveCorrupt

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class LeftoverToken:
    """A placeholder still visible in a shape."""

    slide_num: int
    shape_index: int
    shape_name: str
    token: str


@dataclass
class SlideCheck:
    """Check result for a single slide."""

    slide_num: int
    total_shapes: int
    text_shapes: int
    leftovers: list[LeftoverToken] = field(default_factory=list)

    @property
    def has_issues(self) -> bool:
        return len(self.leftovers) > 0


@dataclass
class DeckCheck:
    """Check result for an entire deck."""

    path: str
    total_slides: int
    slides: list[SlideCheck] = field(default_factory=list)

    @property
    def total_leftovers(self) -> int:
        return sum(len(s.leftovers) for s in self.slides)

    @property
    def slides_with_issues(self) -> int:
        return sum(1 for s in self.slides if s.has_issues)


# ---------------------------------------------------------------------------
# Shape text helpers
# ---------------------------------------------------------------------------


def _shape_texts(shape) -> Iterator[str]:
    """Text of a shape, including table cells and grouped shapes."""
    if isinstance(shape, GroupShape):
        for child in shape.shapes:
            yield from _shape_texts(child)
        return
    if shape.has_text_frame:
        yield shape.text_frame.text
    if shape.has_table:
        for row in shape.table.rows:
            for cell in row.cells:
                yield cell.text_frame.text


def _token_patterns(config: EngineConfig) -> list[re.Pattern[str]]:
    patterns = []
    for open_, close in config.delimiter_pairs:
        o, c = re.escape(open_), re.escape(close)
        patterns.append(re.compile(rf"{o}(?:(?!{o}|{c})[^\n\v]){{1,64}}?{c}"))
    return patterns


def find_tokens(text: str, config: EngineConfig = DEFAULT_CONFIG) -> list[str]:
    """Delimited tokens in plain text, known or not."""
    tokens: list[str] = []
    for pattern in _token_patterns(config):
        tokens.extend(m.group(0) for m in pattern.finditer(text))
    return tokens


def _open_presentation(source: Union[str, Path, bytes]):
    try:
        if isinstance(source, bytes):
            return Presentation(io.BytesIO(source))
        return Presentation(str(source))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError, etree.XMLSyntaxError) as exc:
        label = "<bytes>" if isinstance(source, bytes) else str(source)
        raise ArchiveCorrupt(f"python-pptx cannot open {label}: {exc}", source=label) from exc


# ---------------------------------------------------------------------------
# Slide / deck verification
# ---------------------------------------------------------------------------


def verify_slide(slide, slide_num: int, config: EngineConfig = DEFAULT_CONFIG) -> SlideCheck:
    shapes = list(slide.shapes)
    check = SlideCheck(slide_num=slide_num, total_shapes=len(shapes), text_shapes=0)

    for idx, shape in enumerate(shapes):
        texts = [t for t in _shape_texts(shape) if t.strip()]
        if texts:
            check.text_shapes += 1
        for text in texts:
            for token in find_tokens(text, config):
                check.leftovers.append(
                    LeftoverToken(slide_num=slide_num, shape_index=idx, shape_name=shape.name, token=token)
                )
    return check


def verify_deck(source: Union[str, Path, bytes], config: EngineConfig = DEFAULT_CONFIG) -> DeckCheck:
    """Open a generated deck and report placeholders left on its slides."""
    prs = _open_presentation(source)
    slides = list(prs.slides)
    check = DeckCheck(path="<bytes>" if isinstance(source, bytes) else str(source), total_slides=len(slides))
    for i, slide in enumerate(slides):
        check.slides.append(verify_slide(slide, i + 1, config))
    return check


def slide_texts(source: Union[str, Path, bytes]) -> list[list[str]]:
    """Per slide, the non-empty text of every shape, in shape order."""
    prs = _open_presentation(source)
    out: list[list[str]] = []
    for slide in prs.slides:
        texts: list[str] = []
        for shape in slide.shapes:
            texts.extend(t for t in _shape_texts(shape) if t.strip())
        out.append(texts)
    return out


# ---------------------------------------------------------------------------
# Report formatting
# ---------------------------------------------------------------------------


def format_check(check: DeckCheck, verbose: bool = False) -> str:
    """Format a deck check as human-readable text."""
    lines = []
    name = Path(check.path).stem if check.path != "<bytes>" else check.path
    lines.append(f"\n{'=' * 70}")
    lines.append(f"{name}")
    lines.append(f"{'=' * 70}")

    if check.total_leftovers == 0:
        lines.append(f"  ALL CLEAN - no placeholders left on {check.total_slides} slides")
        return "\n".join(lines)

    lines.append(
        f"  {check.total_leftovers} placeholder(s) left across "
        f"{check.slides_with_issues}/{check.total_slides} slides"
    )
    for sc in check.slides:
        if not sc.has_issues:
            if verbose:
                lines.append(f"\n  Slide {sc.slide_num}: CLEAN")
            continue
        lines.append(f"\n  Slide {sc.slide_num}: {len(sc.leftovers)} placeholder(s)")
        for lt in sc.leftovers:
            lines.append(f'    shape {lt.shape_index} "{lt.shape_name}": {lt.token}')
    return "\n".join(lines)
