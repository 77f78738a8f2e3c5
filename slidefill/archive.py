"""Archive store: read an OOXML package into memory and write it back.

Every part is held as raw bytes next to its original zip entry metadata, so
a part nobody touches is written back exactly as it was read, with the same
compression mode and timestamp.
"""

from __future__ import annotations

import io
import logging
import zipfile
import zlib
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

from pptx.opc.packuri import CONTENT_TYPES_URI

from slidefill.errors import ArchiveCorrupt, ArchiveNotFound, ArchiveWriteError

logger = logging.getLogger(__name__)

CONTENT_TYPES_PART = CONTENT_TYPES_URI.membername

Source = Union[str, Path, bytes, bytearray, BinaryIO]


def _clone_info(info: zipfile.ZipInfo) -> zipfile.ZipInfo:
    """Fresh ZipInfo carrying the entry settings worth keeping."""
    clone = zipfile.ZipInfo(info.filename, date_time=info.date_time)
    clone.compress_type = info.compress_type
    clone.comment = info.comment
    clone.create_system = info.create_system
    clone.external_attr = info.external_attr
    return clone


class Package:
    """An opened document package; exclusive to one generation run.

    Directory entries are not parts; they are kept only so the archive is
    written back with the same entry list.
    """

    def __init__(
        self,
        parts: dict[str, bytes],
        infos: dict[str, zipfile.ZipInfo],
        comment: bytes = b"",
        source: str = "",
        dirs: Optional[dict[str, zipfile.ZipInfo]] = None,
        order: Optional[list[str]] = None,
    ):
        self._parts = parts
        self._infos = infos
        self._dirs = dirs or {}
        self._order = order or list(parts)
        self.comment = comment
        self.source = source
        self._modified: set[str] = set()

    def __contains__(self, path: object) -> bool:
        return path in self._parts

    def __iter__(self) -> Iterator[str]:
        return iter(self._parts)

    def __len__(self) -> int:
        return len(self._parts)

    @property
    def names(self) -> list[str]:
        """Part paths in original archive order."""
        return list(self._parts)

    @property
    def entries(self) -> list[str]:
        """Every archive entry, directories included, in original order."""
        return list(self._order)

    @property
    def modified(self) -> list[str]:
        return [name for name in self._parts if name in self._modified]

    def read(self, path: str) -> bytes:
        try:
            return self._parts[path]
        except KeyError:
            raise KeyError(f"no part named {path!r} in package") from None

    def write(self, path: str, data: bytes) -> None:
        """Replace the payload of an existing part."""
        if path not in self._parts:
            raise KeyError(f"no part named {path!r} in package")
        if data == self._parts[path]:
            return
        self._parts[path] = bytes(data)
        self._modified.add(path)

    def info(self, path: str) -> zipfile.ZipInfo:
        if path in self._dirs:
            return self._dirs[path]
        return self._infos[path]

    def copy(self) -> "Package":
        """Independent copy, safe to mutate in another run."""
        clone = Package(
            dict(self._parts),
            dict(self._infos),
            self.comment,
            self.source,
            dirs=dict(self._dirs),
            order=list(self._order),
        )
        clone._modified = set(self._modified)
        return clone


# ---------------------------------------------------------------------------
# Open
# ---------------------------------------------------------------------------


def read_source(source: Source) -> tuple[bytes, str]:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source), "<bytes>"
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.is_file():
            raise ArchiveNotFound(f"template not found: {path}", path=str(path))
        return path.read_bytes(), str(path)
    return source.read(), getattr(source, "name", "<stream>")


def open_package(source: Source) -> Package:
    """Read a whole package into memory.

    Raises ArchiveNotFound for a missing path and ArchiveCorrupt for anything
    that is not a structurally usable package.
    """
    data, label = read_source(source)
    if not zipfile.is_zipfile(io.BytesIO(data)):
        raise ArchiveCorrupt(f"not a zip archive: {label}", source=label)

    parts: dict[str, bytes] = {}
    infos: dict[str, zipfile.ZipInfo] = {}
    dirs: dict[str, zipfile.ZipInfo] = {}
    order: list[str] = []
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            comment = zf.comment
            for info in zf.infolist():
                if info.filename in infos or info.filename in dirs:
                    raise ArchiveCorrupt(
                        f"duplicate part {info.filename!r} in {label}",
                        source=label,
                        part=info.filename,
                    )
                order.append(info.filename)
                if info.is_dir():
                    dirs[info.filename] = info
                    continue
                parts[info.filename] = zf.read(info)
                infos[info.filename] = info
    except (
        zipfile.BadZipFile,
        zipfile.LargeZipFile,
        zlib.error,
        NotImplementedError,
        RuntimeError,
        EOFError,
    ) as exc:
        raise ArchiveCorrupt(f"unreadable archive {label}: {exc}", source=label) from exc

    if CONTENT_TYPES_PART not in parts:
        raise ArchiveCorrupt(f"{label} has no {CONTENT_TYPES_PART} part", source=label)
    if not any(name.endswith(".rels") for name in parts):
        raise ArchiveCorrupt(f"{label} has no relationship parts", source=label)

    logger.info("Opened %s (%d parts)", label, len(parts))
    return Package(parts, infos, comment=comment, source=label, dirs=dirs, order=order)


# ---------------------------------------------------------------------------
# Serialize
# ---------------------------------------------------------------------------


def serialize(package: Package) -> bytes:
    """Write every entry, in original order, into a new archive."""
    buf = io.BytesIO()
    try:
        with zipfile.ZipFile(buf, "w") as zf:
            zf.comment = package.comment
            for name in package.entries:
                payload = package.read(name) if name in package else b""
                zf.writestr(_clone_info(package.info(name)), payload)
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError, OSError) as exc:
        raise ArchiveWriteError(f"could not serialize package: {exc}", source=package.source) from exc
    return buf.getvalue()


def iter_entries(data: bytes) -> Iterator[tuple[zipfile.ZipInfo, bytes]]:
    """Yield (info, payload) for each entry of a serialized archive."""
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        for info in zf.infolist():
            yield info, zf.read(info)
