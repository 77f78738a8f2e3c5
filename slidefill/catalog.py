"""Part catalog: classify package parts by role and walk relationships."""

from __future__ import annotations

import enum
import posixpath
import re
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup
from pptx.opc.packuri import PACKAGE_URI, PackURI

from slidefill.archive import CONTENT_TYPES_PART, Package
from slidefill.config import DEFAULT_CONFIG, EngineConfig
from slidefill.errors import ArchiveCorrupt, CatalogIncomplete

XML_CONTENT_TYPES = ("application/xml", "text/xml")


class PartRole(enum.Enum):
    SLIDE_MARKUP = "slide"
    MEDIA_ASSET = "media"
    RELATIONSHIP_TABLE = "rels"
    OTHER = "other"


@dataclass(frozen=True)
class Part:
    path: str
    role: PartRole
    content_type: Optional[str] = None
    index: Optional[int] = None  # slides only
    owner: Optional[str] = None  # relationship tables only; "" is the package


@dataclass(frozen=True)
class Relationship:
    rel_id: str
    rel_type: str
    target: str  # part path for internal targets, raw reference otherwise
    external: bool = False


def is_xml_content_type(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    return content_type.endswith("+xml") or content_type in XML_CONTENT_TYPES


def rels_owner(path: str) -> Optional[str]:
    """Owner path a ``.rels`` part is named after, or None if it is not one."""
    head, filename = posixpath.split(path)
    if not filename.endswith(".rels"):
        return None
    base, rels_dir = posixpath.split(head)
    if rels_dir != "_rels":
        return None
    owner_name = filename[: -len(".rels")]
    if not owner_name:
        # _rels/.rels belongs to the package itself
        return "" if not base else None
    return posixpath.join(base, owner_name) if base else owner_name


def rels_path_for(owner: str) -> str:
    """Path of the relationship part that belongs to ``owner``."""
    uri = PACKAGE_URI if not owner else PackURI(f"/{owner}")
    return uri.rels_uri.membername


def parse_content_types(xml: bytes) -> tuple[dict[str, str], dict[str, str]]:
    """Return (defaults by extension, overrides by part path)."""
    soup = BeautifulSoup(xml, "xml")
    defaults = {
        tag["Extension"].lower(): tag["ContentType"]
        for tag in soup.find_all("Default")
        if tag.has_attr("Extension") and tag.has_attr("ContentType")
    }
    overrides = {
        tag["PartName"].lstrip("/"): tag["ContentType"]
        for tag in soup.find_all("Override")
        if tag.has_attr("PartName") and tag.has_attr("ContentType")
    }
    return defaults, overrides


def parse_relationships(xml: bytes, owner: str) -> list[Relationship]:
    """Relationship entries of one table, in table order."""
    soup = BeautifulSoup(xml, "xml")
    base_uri = PACKAGE_URI.baseURI if not owner else PackURI(f"/{owner}").baseURI
    rels: list[Relationship] = []
    for tag in soup.find_all("Relationship"):
        rel_id = tag.get("Id")
        rel_type = tag.get("Type")
        target = tag.get("Target")
        if not rel_id or not rel_type or target is None:
            continue
        if tag.get("TargetMode") == "External":
            rels.append(Relationship(rel_id, rel_type, target, external=True))
            continue
        if target.startswith("/"):
            resolved = PackURI(posixpath.normpath(target))
        else:
            resolved = PackURI.from_rel_ref(base_uri, target)
        rels.append(Relationship(rel_id, rel_type, resolved.membername))
    return rels


class Catalog:
    """A package with every part tagged by role."""

    def __init__(self, package: Package, config: EngineConfig, parts: dict[str, Part]):
        self.package = package
        self.config = config
        self.parts = parts
        self._rels_by_owner = {
            part.owner: part.path
            for part in parts.values()
            if part.role is PartRole.RELATIONSHIP_TABLE
        }

    @property
    def slides(self) -> list[Part]:
        """Slide parts in presentation order."""
        slides = [p for p in self.parts.values() if p.role is PartRole.SLIDE_MARKUP]
        return sorted(slides, key=lambda p: (p.index, p.path))

    @property
    def media(self) -> list[Part]:
        return [p for p in self.parts.values() if p.role is PartRole.MEDIA_ASSET]

    def role(self, path: str) -> PartRole:
        return self.parts[path].role

    def content_type(self, path: str) -> Optional[str]:
        return self.parts[path].content_type

    def rels_part_for(self, owner: str) -> Optional[str]:
        return self._rels_by_owner.get(owner)

    def relationships(self, owner: str) -> list[Relationship]:
        rels_path = self.rels_part_for(owner)
        if rels_path is None:
            return []
        return parse_relationships(self.package.read(rels_path), owner)


def classify(package: Package, config: EngineConfig = DEFAULT_CONFIG) -> Catalog:
    """Tag every part of ``package``; fails if there is no slide markup."""
    try:
        defaults, overrides = parse_content_types(package.read(CONTENT_TYPES_PART))
    except KeyError as exc:
        raise ArchiveCorrupt(f"{package.source} has no {CONTENT_TYPES_PART} part") from exc

    slide_re = re.compile(rf"^{re.escape(config.slide_dir)}/slide(\d+)\.xml$")
    media_prefix = f"{config.media_dir}/"

    parts: dict[str, Part] = {}
    for path in package.names:
        ext = posixpath.splitext(path)[1].lstrip(".").lower()
        content_type = overrides.get(path) or defaults.get(ext)

        slide_match = slide_re.match(path)
        owner = rels_owner(path)
        if slide_match and is_xml_content_type(content_type):
            part = Part(path, PartRole.SLIDE_MARKUP, content_type, index=int(slide_match.group(1)))
        elif path.startswith(media_prefix):
            part = Part(path, PartRole.MEDIA_ASSET, content_type)
        elif (
            owner is not None
            and (owner == "" or owner in package)
            and rels_path_for(owner) == path
        ):
            part = Part(path, PartRole.RELATIONSHIP_TABLE, content_type, owner=owner)
        else:
            part = Part(path, PartRole.OTHER, content_type)
        parts[path] = part

    catalog = Catalog(package, config, parts)
    if not catalog.slides:
        raise CatalogIncomplete(
            f"no slide parts under {config.slide_dir}/ in {package.source}",
            source=package.source,
        )
    return catalog
