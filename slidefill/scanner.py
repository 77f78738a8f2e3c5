"""Token scanner: find placeholders in rendered slide text.

PowerPoint routinely stores one visible string as several ``<a:r>`` runs
(spell-check marks, partial bolding, an edit in the middle of a word). The
scanner therefore searches the concatenated run text of each slide and maps
every match back to run/offset coordinates, instead of matching raw markup.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from lxml import etree
from pptx.oxml.ns import qn

from slidefill.catalog import Catalog
from slidefill.config import BOUNDARY, EngineConfig, PlaceholderToken
from slidefill.errors import ArchiveCorrupt

_P = qn("a:p")
_R = qn("a:r")
_T = qn("a:t")
_BR = qn("a:br")
_FLD = qn("a:fld")

# Upper bound on an unknown token body, so stray delimiters in prose are not
# reported as one giant token.
MAX_BODY = 64


def parse_markup(data: bytes, path: str = "") -> etree._Element:
    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    try:
        return etree.fromstring(data, parser)
    except etree.XMLSyntaxError as exc:
        raise ArchiveCorrupt(f"slide markup {path} is not well-formed: {exc}", part=path) from exc


# ---------------------------------------------------------------------------
# Character-to-run index
# ---------------------------------------------------------------------------


class TextIndex:
    """Rendered text of one slide with a run coordinate for every character.

    ``positions[i]`` is ``(run_index, offset)`` for run characters and None
    for the separators emitted between paragraphs, at ``<a:br>`` and around
    ``<a:fld>``.
    """

    def __init__(self, runs: list[etree._Element], text: str, positions: list[Optional[tuple[int, int]]]):
        self.runs = runs
        self.text = text
        self.positions = positions

    @classmethod
    def build(cls, root: etree._Element) -> "TextIndex":
        runs: list[etree._Element] = []
        chunks: list[str] = []
        positions: list[Optional[tuple[int, int]]] = []

        def boundary() -> None:
            chunks.append(BOUNDARY)
            positions.append(None)

        for para in root.iter(_P):
            for child in para:
                if child.tag == _R:
                    run_idx = len(runs)
                    runs.append(child)
                    text = run_text(child)
                    chunks.append(text)
                    positions.extend((run_idx, offset) for offset in range(len(text)))
                elif child.tag in (_BR, _FLD):
                    boundary()
            boundary()

        return cls(runs, "".join(chunks), positions)

    def locate(self, start: int, end: int) -> Optional[tuple[tuple[int, int], tuple[int, int]]]:
        """Run coordinates of ``text[start:end]``, or None if it crosses a separator."""
        window = self.positions[start:end]
        if not window or any(pos is None for pos in window):
            return None
        return window[0], window[-1]


def run_text(run: etree._Element) -> str:
    t = run.find(_T)
    if t is None or t.text is None:
        return ""
    return t.text


def set_run_text(run: etree._Element, text: str) -> None:
    t = run.find(_T)
    if t is None:
        t = etree.SubElement(run, _T)
    t.text = text


def paragraph_texts(root: etree._Element) -> list[str]:
    """Visible text of every paragraph; line breaks become newlines."""
    texts: list[str] = []
    for para in root.iter(_P):
        chunks: list[str] = []
        for child in para:
            if child.tag in (_R, _FLD):
                chunks.append(run_text(child))
            elif child.tag == _BR:
                chunks.append("\n")
        texts.append("".join(chunks))
    return texts


# ---------------------------------------------------------------------------
# Spans
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RunSpan:
    """One complete placeholder occurrence in run coordinates.

    ``end_offset`` is exclusive and refers to ``end_run``.
    """

    start_run: int
    start_offset: int
    end_run: int
    end_offset: int
    char_start: int
    char_end: int
    text: str
    body: str
    token: Optional[PlaceholderToken] = None

    @property
    def known(self) -> bool:
        return self.token is not None

    @property
    def crosses_runs(self) -> bool:
        return self.start_run != self.end_run

    def overlaps(self, other: "RunSpan") -> bool:
        return self.char_start < other.char_end and other.char_start < self.char_end


def _known_pattern(config: EngineConfig) -> re.Pattern[str]:
    literals = sorted((t.literal for t in config.tokens), key=len, reverse=True)
    return re.compile("|".join(re.escape(lit) for lit in literals))


def _generic_pattern(open_: str, close: str) -> re.Pattern[str]:
    o, c = re.escape(open_), re.escape(close)
    return re.compile(rf"{o}((?:(?!{o}|{c})[^{BOUNDARY}]){{1,{MAX_BODY}}}?){c}")


Match = tuple[int, int, str, Optional[PlaceholderToken]]


def find_matches(text: str, config: EngineConfig) -> list[Match]:
    """Non-overlapping ``(start, end, body, token)`` matches in plain text."""
    by_literal = {t.literal: t for t in config.tokens}
    found: list[Match] = []

    for m in _known_pattern(config).finditer(text):
        token = by_literal[m.group(0)]
        found.append((m.start(), m.end(), token.name, token))

    def taken(start: int, end: int) -> bool:
        return any(start < e and s < end for s, e, _, _ in found)

    for open_, close in config.delimiter_pairs:
        for m in _generic_pattern(open_, close).finditer(text):
            if not taken(m.start(), m.end()):
                found.append((m.start(), m.end(), m.group(1), None))
    return sorted(found, key=lambda item: item[0])


def find_spans(index: TextIndex, config: EngineConfig) -> list[RunSpan]:
    """Non-overlapping token spans over an index, in document order."""
    text = index.text
    spans: list[RunSpan] = []
    for start, end, body, token in find_matches(text, config):
        located = index.locate(start, end)
        if located is None:
            continue
        (start_run, start_offset), (end_run, last_offset) = located
        spans.append(
            RunSpan(
                start_run=start_run,
                start_offset=start_offset,
                end_run=end_run,
                end_offset=last_offset + 1,
                char_start=start,
                char_end=end,
                text=text[start:end],
                body=body,
                token=token,
            )
        )
    return spans


def scan(root: etree._Element, config: EngineConfig) -> tuple[TextIndex, list[RunSpan]]:
    index = TextIndex.build(root)
    return index, find_spans(index, config)


def scan_part(catalog: Catalog, path: str) -> list[RunSpan]:
    """Spans of one catalogued slide part."""
    root = parse_markup(catalog.package.read(path), path)
    return scan(root, catalog.config)[1]
