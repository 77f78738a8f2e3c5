"""One-call generation runs: template + record (+ image) -> new deck.

Each run works on its own in-memory Package; a template on disk is only ever
read, so any number of runs may use it at once.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
import unicodedata
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

from slidefill.archive import Package, Source, open_package
from slidefill.catalog import Catalog, classify
from slidefill.config import DEFAULT_CONFIG, EngineConfig
from slidefill.engine import SubstitutionReport, apply
from slidefill.errors import NoMediaCandidate, SlideFillError
from slidefill.media import MediaBinding, replace_image
from slidefill.repackage import repackage, repackage_bytes
from slidefill.scanner import scan_part

logger = logging.getLogger(__name__)

Template = Union[Source, Package]
ImageInput = Union[bytes, str, Path, None]


@dataclass
class GenerationResult:
    report: SubstitutionReport
    media: Optional[MediaBinding] = None
    media_error: Optional[NoMediaCandidate] = None
    data: bytes = b""
    output: Optional[Path] = None

    @property
    def partial(self) -> bool:
        """An image was supplied but could not be placed."""
        return self.media_error is not None

    @property
    def needs_attention(self) -> bool:
        return self.partial or not self.report.is_clean


def _open(template: Template) -> Package:
    if isinstance(template, Package):
        return template.copy()
    return open_package(template)


def _image_bytes(image: ImageInput) -> Optional[bytes]:
    if image is None or isinstance(image, bytes):
        return image
    return Path(image).read_bytes()


def _run(
    template: Template,
    record: Mapping[str, object],
    image: ImageInput,
    config: EngineConfig,
) -> tuple[Catalog, GenerationResult]:
    catalog = classify(_open(template), config)
    catalog, report = apply(catalog, record)
    result = GenerationResult(report=report)

    image_data = _image_bytes(image)
    if image_data is not None:
        try:
            result.media = replace_image(catalog, image_data)
        except NoMediaCandidate as exc:
            logger.warning("%s; keeping text substitution only", exc)
            result.media_error = exc
    return catalog, result


def render(
    template: Template,
    record: Mapping[str, object],
    image: ImageInput = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> GenerationResult:
    """Run the whole pipeline in memory; the new archive is ``result.data``."""
    catalog, result = _run(template, record, image, config)
    result.data = repackage_bytes(catalog)
    return result


def generate(
    template: Template,
    record: Mapping[str, object],
    output_path: Union[str, Path],
    image: ImageInput = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> GenerationResult:
    """Run the whole pipeline and write the new archive to ``output_path``."""
    catalog, result = _run(template, record, image, config)
    result.output = repackage(catalog, output_path)
    return result


async def generate_async(
    template: Template,
    record: Mapping[str, object],
    output_path: Union[str, Path],
    image: ImageInput = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> GenerationResult:
    return await asyncio.to_thread(generate, template, record, output_path, image, config)


# ---------------------------------------------------------------------------
# Batch runs
# ---------------------------------------------------------------------------


def output_name(subject: str, extension: str = "pptx", prefix: str = "presentation") -> str:
    """Collision-free file name: sanitized subject, ms timestamp, random suffix."""
    ascii_subject = unicodedata.normalize("NFKD", subject).encode("ascii", "ignore").decode("ascii")
    cleaned = re.sub(r"\s+", "_", ascii_subject.strip())
    cleaned = re.sub(r"[^A-Za-z0-9_-]", "", cleaned) or "untitled"
    stamp = int(time.time() * 1000)
    return f"{prefix}_{cleaned}_{stamp}_{uuid.uuid4().hex[:8]}.{extension}"


@dataclass(frozen=True)
class Success:
    index: int
    output: Path
    result: GenerationResult


@dataclass(frozen=True)
class Failure:
    index: int
    reason: str
    error: Optional[BaseException] = None


@dataclass
class BatchResult:
    outcomes: list[Union[Success, Failure]] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if isinstance(o, Success))

    @property
    def failures(self) -> list[Failure]:
        return [o for o in self.outcomes if isinstance(o, Failure)]

    @property
    def total(self) -> int:
        return len(self.outcomes)


def generate_batch(
    template: Source,
    records: Sequence[Mapping[str, object]],
    output_dir: Union[str, Path],
    images: Optional[Sequence[ImageInput]] = None,
    config: EngineConfig = DEFAULT_CONFIG,
    subject_field: str = "NAME",
) -> BatchResult:
    """Generate one deck per record, continuing past per-record failures.

    The template is opened and classified once up front; a template that is
    missing or structurally broken aborts the batch before any output exists.
    """
    base = open_package(template)
    classify(base, config)
    output_dir = Path(output_dir)

    batch = BatchResult()
    for i, record in enumerate(records):
        image = images[i] if images is not None and i < len(images) else None
        subject = str(record.get(subject_field) or f"record{i + 1}")
        output_path = output_dir / output_name(subject)
        try:
            result = generate(base, record, output_path, image, config)
        except (SlideFillError, OSError, ValueError) as exc:
            logger.error("Record %d (%s) failed: %s", i + 1, subject, exc)
            batch.outcomes.append(Failure(index=i, reason=str(exc), error=exc))
            continue
        batch.outcomes.append(Success(index=i, output=output_path, result=result))

    logger.info("Batch finished: %d/%d generated", batch.success_count, batch.total)
    return batch


# ---------------------------------------------------------------------------
# Template inspection
# ---------------------------------------------------------------------------


def list_placeholders(template: Template, config: EngineConfig = DEFAULT_CONFIG) -> list[str]:
    """Every placeholder body found in the template's slides, known or not."""
    catalog = classify(_open(template), config)
    found: set[str] = set()
    for slide in catalog.slides:
        found.update(span.body for span in scan_part(catalog, slide.path))
    return sorted(found)
