from __future__ import annotations

from pathlib import Path

import pytest

from builders import build_deck, png_bytes


@pytest.fixture
def deck_bytes() -> bytes:
    """The canonical template: split ``{{NAME}}`` plus a picture."""
    return build_deck()


@pytest.fixture
def deck_path(tmp_path: Path, deck_bytes: bytes) -> Path:
    path = tmp_path / "template.pptx"
    path.write_bytes(deck_bytes)
    return path


@pytest.fixture
def new_png() -> bytes:
    return png_bytes(color=(20, 120, 220), width=6, height=6)


@pytest.fixture
def record() -> dict[str, str]:
    return {"NAME": "Ana", "DATA_NASCIMENTO": "01/02/1990"}
