"""Command line entry point: fill a PPTX template from a JSON record.

Usage:
    slidefill template.pptx record.json [output.pptx] [--image photo.png]
    slidefill template.pptx records.json --output-dir out/
    slidefill template.pptx --list-placeholders
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from slidefill.config import DEFAULT_CONFIG, EngineConfig
from slidefill.engine import format_report
from slidefill.errors import SlideFillError
from slidefill.pipeline import Success, generate, generate_batch, list_placeholders
from slidefill.verify import format_check, verify_deck

# Exit codes
EXIT_OK = 0
EXIT_ERROR = 1
EXIT_LEFTOVERS = 2


def load_records(path: Path) -> list[dict]:
    """Records from a JSON file holding one object or a list of objects."""
    data = json.loads(path.read_text(encoding="utf-8"))
    items = data if isinstance(data, list) else [data]
    records = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValueError(f"record {i + 1} in {path} is not a JSON object")
        records.append({str(k).upper(): v for k, v in item.items()})
    return records


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="slidefill",
        description="Fill {{PLACEHOLDER}} tokens in a PowerPoint template from JSON records.",
    )
    parser.add_argument("template", help="Template .pptx file")
    parser.add_argument("record", nargs="?", help="JSON file with one record or a list of records")
    parser.add_argument(
        "output",
        nargs="?",
        help="Output .pptx path; only valid when the record file holds one record (default: generated name)",
    )
    parser.add_argument("--image", action="append", default=[], help="Replacement image (repeat per record)")
    parser.add_argument("--output-dir", default=".", help="Directory for generated decks (default: .)")
    parser.add_argument(
        "--field", action="append", default=[], help="Extra placeholder name to recognize (repeatable)"
    )
    parser.add_argument("--list-placeholders", action="store_true", help="List placeholders and exit")
    parser.add_argument("--verify", action="store_true", help="Re-open each output and check for leftovers")
    parser.add_argument("--strict", action="store_true", help="Exit 2 if any placeholder is left unfilled")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging and full reports")
    return parser


def _check_output(path: Path, config: EngineConfig, verbose: bool) -> int:
    check = verify_deck(path, config)
    print(format_check(check, verbose))
    return check.total_leftovers


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    template = Path(args.template)
    if not template.exists():
        print(f"Error: Template not found: {template}", file=sys.stderr)
        return EXIT_ERROR

    try:
        config = DEFAULT_CONFIG.with_fields(*(f.upper() for f in args.field)) if args.field else DEFAULT_CONFIG

        if args.list_placeholders:
            for name in list_placeholders(template, config):
                known = "" if config.token_for(name) else "  (unknown)"
                print(f"{name}{known}")
            return EXIT_OK

        if not args.record:
            parser.error("a record file is required unless --list-placeholders is given")

        records = load_records(Path(args.record))
        if len(records) > 1 and args.output is not None:
            parser.error("an output path only applies to a single record; use --output-dir for several")
        if len(records) > 1 or args.output is None:
            return _run_batch(template, records, args, config)
        return _run_single(template, records[0], args, config)
    except (SlideFillError, OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_ERROR


def _run_single(template: Path, record: dict, args: argparse.Namespace, config: EngineConfig) -> int:
    output = Path(args.output)
    image = args.image[0] if args.image else None

    print(f"Template: {template}")
    print(f"Output: {output}")
    result = generate(template, record, output, image=image, config=config)
    print(format_report(result.report, args.verbose))
    if result.media:
        print(f"  image: replaced {result.media.media_path}")
    if result.partial:
        print(f"Warning: {result.media_error}", file=sys.stderr)

    leftovers = 0 if result.report.is_clean else 1
    if args.verify:
        leftovers += _check_output(output, config, args.verbose)
    if args.strict and leftovers:
        return EXIT_LEFTOVERS
    return EXIT_OK


def _run_batch(template: Path, records: list[dict], args: argparse.Namespace, config: EngineConfig) -> int:
    images = args.image or None
    batch = generate_batch(template, records, args.output_dir, images=images, config=config)

    leftovers = 0
    for outcome in batch.outcomes:
        if isinstance(outcome, Success):
            print(f"[{outcome.index + 1}] {outcome.output}")
            print(format_report(outcome.result.report, args.verbose))
            if not outcome.result.report.is_clean:
                leftovers += 1
            if args.verify:
                leftovers += _check_output(outcome.output, config, args.verbose)
        else:
            print(f"[{outcome.index + 1}] FAILED: {outcome.reason}", file=sys.stderr)

    print(f"\n{'=' * 70}")
    print(f"SUMMARY: {batch.success_count}/{batch.total} decks generated")
    print(f"{'=' * 70}")

    if batch.failures:
        return EXIT_ERROR
    if args.strict and leftovers:
        return EXIT_LEFTOVERS
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
