"""Repackager: write a mutated catalog back out as an archive."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Union

from slidefill.archive import serialize
from slidefill.catalog import Catalog
from slidefill.errors import ArchiveWriteError

logger = logging.getLogger(__name__)


def repackage_bytes(catalog: Catalog) -> bytes:
    return serialize(catalog.package)


def repackage(catalog: Catalog, output_path: Union[str, Path]) -> Path:
    """Write the package to ``output_path`` atomically.

    The archive is built in memory and written to a temporary file beside the
    destination, then moved into place, so a failed run leaves nothing behind.
    """
    output_path = Path(output_path)
    data = repackage_bytes(catalog)

    tmp_name = None
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{output_path.name}.", suffix=".tmp", dir=output_path.parent
        )
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, output_path)
    except OSError as exc:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise ArchiveWriteError(f"could not write {output_path}: {exc}", path=str(output_path)) from exc

    logger.info(
        "Wrote %s (%d parts, %d modified)",
        output_path,
        len(catalog.package),
        len(catalog.package.modified),
    )
    return output_path
