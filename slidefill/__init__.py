"""slidefill - fill placeholder tokens in PowerPoint templates.

Usage:
    from slidefill import generate
    result = generate("template.pptx", {"NAME": "Ana"}, "out.pptx", image="photo.png")
"""

from slidefill.archive import Package, open_package, serialize
from slidefill.catalog import Catalog, Part, PartRole, classify
from slidefill.config import DEFAULT_CONFIG, EngineConfig, PlaceholderToken
from slidefill.engine import SubstitutionReport, apply, format_report
from slidefill.errors import (
    AmbiguousTokenSet,
    ArchiveCorrupt,
    ArchiveNotFound,
    ArchiveWriteError,
    CatalogIncomplete,
    NoMediaCandidate,
    SlideFillError,
)
from slidefill.pipeline import (
    BatchResult,
    Failure,
    GenerationResult,
    Success,
    generate,
    generate_async,
    generate_batch,
    list_placeholders,
    output_name,
    render,
)
from slidefill.media import MediaBinding, replace_image, resolve_media
from slidefill.repackage import repackage, repackage_bytes
from slidefill.scanner import RunSpan, scan
from slidefill.verify import DeckCheck, verify_deck

__version__ = "0.1.0"

__all__ = [
    "AmbiguousTokenSet",
    "ArchiveCorrupt",
    "ArchiveNotFound",
    "ArchiveWriteError",
    "BatchResult",
    "Catalog",
    "CatalogIncomplete",
    "DEFAULT_CONFIG",
    "DeckCheck",
    "EngineConfig",
    "Failure",
    "GenerationResult",
    "MediaBinding",
    "NoMediaCandidate",
    "Package",
    "Part",
    "PartRole",
    "PlaceholderToken",
    "RunSpan",
    "SlideFillError",
    "SubstitutionReport",
    "Success",
    "apply",
    "classify",
    "format_report",
    "generate",
    "generate_async",
    "generate_batch",
    "list_placeholders",
    "open_package",
    "output_name",
    "render",
    "repackage",
    "repackage_bytes",
    "replace_image",
    "resolve_media",
    "scan",
    "serialize",
    "verify_deck",
]
