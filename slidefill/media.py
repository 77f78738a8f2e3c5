"""Media resolver: find the image a slide actually references and swap it.

The replaceable image is never chosen by filename. It is the target of the
first image relationship in the relationship table of the first slide that
has one, so the part that changes is the one the slide really displays.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional

from pptx.parts.image import Image

from slidefill.catalog import Catalog, PartRole
from slidefill.errors import NoMediaCandidate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediaBinding:
    """The one image part chosen for replacement in a generation run."""

    slide: str
    rel_id: str
    media_path: str
    declared_type: Optional[str] = None
    supplied_type: Optional[str] = None

    @property
    def format_mismatch(self) -> bool:
        if not self.declared_type or not self.supplied_type:
            return False
        return self.declared_type.lower() != self.supplied_type.lower()


def sniff_content_type(data: bytes) -> Optional[str]:
    """Content type of image bytes, or None if the format is not recognized."""
    try:
        return Image.from_blob(data).content_type
    except (OSError, KeyError, ValueError):
        return None


def resolve_media(catalog: Catalog) -> Optional[MediaBinding]:
    """Walk slide -> relationship table -> media part in presentation order."""
    rel_types = catalog.config.image_rel_types
    for slide in catalog.slides:
        for rel in catalog.relationships(slide.path):
            if rel.rel_type not in rel_types:
                continue
            if rel.external:
                logger.debug("%s: %s links an external image, skipping", slide.path, rel.rel_id)
                continue
            target = catalog.parts.get(rel.target)
            if target is None or target.role is not PartRole.MEDIA_ASSET:
                logger.debug("%s: %s points at missing media %s", slide.path, rel.rel_id, rel.target)
                continue
            return MediaBinding(
                slide=slide.path,
                rel_id=rel.rel_id,
                media_path=target.path,
                declared_type=target.content_type,
            )
    return None


def replace_image(catalog: Catalog, image: bytes) -> MediaBinding:
    """Overwrite the bound media part with ``image``.

    Path and declared content type stay as they are; no format conversion is
    attempted. Raises NoMediaCandidate, without touching the package, when no
    slide references an image.
    """
    if not image:
        raise ValueError("replacement image is empty")

    binding = resolve_media(catalog)
    if binding is None:
        raise NoMediaCandidate(
            f"no slide in {catalog.package.source} references an image",
            source=catalog.package.source,
        )

    binding = replace(binding, supplied_type=sniff_content_type(image))
    if binding.format_mismatch:
        logger.warning(
            "Replacement for %s is %s but the part is declared %s",
            binding.media_path,
            binding.supplied_type,
            binding.declared_type,
        )

    catalog.package.write(binding.media_path, image)
    logger.info("Replaced %s (%s on %s)", binding.media_path, binding.rel_id, binding.slide)
    return binding
