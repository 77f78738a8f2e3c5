"""Substitution engine: apply a replacement record to every slide."""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Mapping

from lxml import etree

from slidefill.catalog import Catalog
from slidefill.config import EngineConfig
from slidefill.scanner import RunSpan, TextIndex, find_matches, parse_markup, run_text, scan, set_run_text

logger = logging.getLogger(__name__)

# Characters XML 1.0 does not allow in text content
_XML_INVALID = re.compile(r"[^\x09\x0a\x0d\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


@dataclass
class PartReport:
    """Token outcome for a single slide part."""

    part: str
    slide_num: int
    resolved: Counter = field(default_factory=Counter)
    unresolved: Counter = field(default_factory=Counter)
    unknown: Counter = field(default_factory=Counter)

    @property
    def has_issues(self) -> bool:
        return bool(self.unresolved) or bool(self.unknown)


@dataclass
class SubstitutionReport:
    """Resolved/unresolved/unknown token counts for a whole deck."""

    parts: list[PartReport] = field(default_factory=list)

    @property
    def total_resolved(self) -> int:
        return sum(sum(p.resolved.values()) for p in self.parts)

    @property
    def total_unresolved(self) -> int:
        return sum(sum(p.unresolved.values()) for p in self.parts)

    @property
    def total_unknown(self) -> int:
        return sum(sum(p.unknown.values()) for p in self.parts)

    @property
    def is_clean(self) -> bool:
        return not any(p.has_issues for p in self.parts)

    @property
    def unresolved_fields(self) -> list[str]:
        return sorted({name for p in self.parts for name in p.unresolved})

    @property
    def unknown_tokens(self) -> list[str]:
        return sorted({name for p in self.parts for name in p.unknown})

    def part(self, path: str) -> PartReport:
        for report in self.parts:
            if report.part == path:
                return report
        raise KeyError(path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "resolved": self.total_resolved,
            "unresolved": self.total_unresolved,
            "unknown": self.total_unknown,
            "parts": [
                {
                    "part": p.part,
                    "slide": p.slide_num,
                    "resolved": dict(p.resolved),
                    "unresolved": dict(p.unresolved),
                    "unknown": dict(p.unknown),
                }
                for p in self.parts
            ],
        }


# ---------------------------------------------------------------------------
# Markup edits
# ---------------------------------------------------------------------------


def xml_safe(value: str) -> str:
    return _XML_INVALID.sub("", value)


def _drop(run: etree._Element) -> None:
    parent = run.getparent()
    if parent is not None:
        parent.remove(run)


def rewrite_span(index: TextIndex, span: RunSpan, value: str) -> None:
    """Replace one span with ``value``.

    A span over several runs collapses into its first run, which keeps that
    run's ``<a:rPr>``. Runs wholly inside the token are removed; the last run
    keeps whatever text followed the token, or is removed if nothing did.
    """
    first = index.runs[span.start_run]
    text = run_text(first)
    if not span.crosses_runs:
        set_run_text(first, text[: span.start_offset] + value + text[span.end_offset :])
        return

    set_run_text(first, text[: span.start_offset] + value)
    for run in index.runs[span.start_run + 1 : span.end_run]:
        _drop(run)
    last = index.runs[span.end_run]
    rest = run_text(last)[span.end_offset :]
    if rest:
        set_run_text(last, rest)
    else:
        _drop(last)


def forms_token(text: str, span: RunSpan, value: str, config: EngineConfig) -> bool:
    """True if putting ``value`` in place of ``span`` creates a token around it."""
    candidate = text[: span.char_start] + value + text[span.char_end :]
    stop = span.char_start + len(value)
    return any(s < stop and span.char_start < e for s, e, _, _ in find_matches(candidate, config))


def serialize_markup(root: etree._Element) -> bytes:
    """Serialize keeping the original XML declaration."""
    tree = root.getroottree()
    docinfo = tree.docinfo
    return etree.tostring(
        tree,
        xml_declaration=True,
        encoding=docinfo.encoding or "UTF-8",
        standalone=docinfo.standalone,
    )


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


def apply(catalog: Catalog, record: Mapping[str, object]) -> tuple[Catalog, SubstitutionReport]:
    """Substitute ``record`` values into every slide of ``catalog``.

    Tokens without a value, and delimiter pairs that name no known token, are
    left verbatim and only reported. Slides without substitutions keep their
    original bytes.
    """
    config = catalog.config
    delimiters = {d for pair in config.delimiter_pairs for d in pair}
    report = SubstitutionReport()

    for slide in catalog.slides:
        root = parse_markup(catalog.package.read(slide.path), slide.path)
        index, spans = scan(root, config)
        part_report = PartReport(part=slide.path, slide_num=slide.index)

        candidates: list[tuple[RunSpan, str]] = []
        for span in spans:
            if span.token is None:
                part_report.unknown[span.body] += 1
                continue
            value = span.token.lookup(record)
            if value is None:
                part_report.unresolved[span.token.field] += 1
                continue
            value = xml_safe(value)
            if any(d in value for d in delimiters):
                logger.warning(
                    "Value for %s contains a placeholder delimiter; leaving %s in %s",
                    span.token.field,
                    span.text,
                    slide.path,
                )
                part_report.unresolved[span.token.field] += 1
                continue
            candidates.append((span, value))

        # right to left, so earlier offsets stay valid and each check sees
        # the text that will actually follow the value
        text = index.text
        edited = False
        for span, value in reversed(candidates):
            if forms_token(text, span, value, config):
                logger.warning(
                    "Value for %s would form a new placeholder next to %s in %s; leaving it",
                    span.token.field,
                    span.text,
                    slide.path,
                )
                part_report.unresolved[span.token.field] += 1
                continue
            rewrite_span(index, span, value)
            text = text[: span.char_start] + value + text[span.char_end :]
            part_report.resolved[span.token.field] += 1
            edited = True
        if edited:
            catalog.package.write(slide.path, serialize_markup(root))

        logger.debug(
            "%s: %d resolved, %d unresolved, %d unknown",
            slide.path,
            sum(part_report.resolved.values()),
            sum(part_report.unresolved.values()),
            sum(part_report.unknown.values()),
        )
        if part_report.unresolved:
            logger.warning("%s: unresolved placeholders %s", slide.path, sorted(part_report.unresolved))
        if part_report.unknown:
            logger.warning("%s: unknown placeholders %s", slide.path, sorted(part_report.unknown))
        report.parts.append(part_report)

    return catalog, report


# ---------------------------------------------------------------------------
# Report formatting
# ---------------------------------------------------------------------------


def format_report(report: SubstitutionReport, verbose: bool = False) -> str:
    """Format a substitution report as human-readable text."""
    lines = [
        f"  {report.total_resolved} resolved, {report.total_unresolved} unresolved, "
        f"{report.total_unknown} unknown across {len(report.parts)} slides"
    ]
    for p in report.parts:
        if not p.has_issues and not verbose:
            continue
        lines.append(f"\n  Slide {p.slide_num} ({p.part})")
        if p.resolved and verbose:
            lines.append("    resolved:   " + ", ".join(f"{k} x{v}" for k, v in sorted(p.resolved.items())))
        if p.unresolved:
            lines.append("    unresolved: " + ", ".join(f"{k} x{v}" for k, v in sorted(p.unresolved.items())))
        if p.unknown:
            lines.append("    unknown:    " + ", ".join(f"{k} x{v}" for k, v in sorted(p.unknown.items())))
    return "\n".join(lines)
