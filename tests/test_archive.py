"""Tests for reading packages into memory and writing them back."""

from __future__ import annotations

import io
import struct
import zipfile

import pytest

from builders import build_package, build_zip, slide_xml
from slidefill.archive import Package, iter_entries, open_package, serialize
from slidefill.catalog import PartRole, classify
from slidefill.errors import ArchiveCorrupt, ArchiveNotFound


@pytest.fixture
def package_bytes() -> bytes:
    return build_package({1: slide_xml(["{{NAME}}"])}, media={"image1.png": b"png"}, comment=b"kept")


def test_missing_path_raises_not_found(tmp_path):
    with pytest.raises(ArchiveNotFound) as excinfo:
        open_package(tmp_path / "nope.pptx")
    assert excinfo.value.details["path"].endswith("nope.pptx")


def test_non_zip_input_is_corrupt():
    with pytest.raises(ArchiveCorrupt):
        open_package(b"this is not a zip file")


def test_zip_without_content_types_is_corrupt():
    data = build_zip({"_rels/.rels": "<Relationships/>", "ppt/slides/slide1.xml": "<x/>"})
    with pytest.raises(ArchiveCorrupt, match="Content_Types"):
        open_package(data)


def test_zip_without_relationships_is_corrupt():
    data = build_zip({"[Content_Types].xml": "<Types/>", "ppt/slides/slide1.xml": "<x/>"})
    with pytest.raises(ArchiveCorrupt, match="relationship"):
        open_package(data)


def test_duplicate_entries_are_corrupt(package_bytes):
    buf = io.BytesIO(package_bytes)
    with pytest.warns(UserWarning):
        with zipfile.ZipFile(buf, "a") as zf:
            zf.writestr("ppt/slides/slide1.xml", "<dup/>")
    with pytest.raises(ArchiveCorrupt, match="duplicate"):
        open_package(buf.getvalue())


def test_open_accepts_path_bytes_and_stream(tmp_path, package_bytes):
    path = tmp_path / "deck.pptx"
    path.write_bytes(package_bytes)

    from_path = open_package(path)
    from_bytes = open_package(package_bytes)
    from_stream = open_package(io.BytesIO(package_bytes))

    assert from_path.names == from_bytes.names == from_stream.names
    assert from_path.source == str(path)
    assert "ppt/slides/slide1.xml" in from_bytes
    assert len(from_bytes) == len(from_bytes.names)


def test_untouched_package_serializes_identically(package_bytes):
    package = open_package(package_bytes)
    out = serialize(package)

    before = list(iter_entries(package_bytes))
    after = list(iter_entries(out))
    assert [i.filename for i, _ in before] == [i.filename for i, _ in after]
    for (old_info, old_data), (new_info, new_data) in zip(before, after):
        assert new_data == old_data
        assert new_info.compress_type == old_info.compress_type
        assert new_info.date_time == old_info.date_time
    with zipfile.ZipFile(io.BytesIO(out)) as zf:
        assert zf.comment == b"kept"


def test_write_tracks_modified_parts(package_bytes):
    package = open_package(package_bytes)
    original = package.read("ppt/slides/slide1.xml")

    package.write("ppt/slides/slide1.xml", original)
    assert package.modified == []

    package.write("ppt/media/image1.png", b"new")
    assert package.modified == ["ppt/media/image1.png"]
    assert package.read("ppt/media/image1.png") == b"new"


def test_write_refuses_unknown_parts(package_bytes):
    package = open_package(package_bytes)
    with pytest.raises(KeyError):
        package.write("ppt/media/new.png", b"x")
    with pytest.raises(KeyError):
        package.read("ppt/media/new.png")


def test_copy_is_independent(package_bytes):
    package = open_package(package_bytes)
    clone = package.copy()
    clone.write("ppt/media/image1.png", b"changed")

    assert package.read("ppt/media/image1.png") == b"png"
    assert package.modified == []
    assert isinstance(clone, Package)


def _flip_payload(data: bytes, name: str, count: int = 10) -> bytes:
    """Corrupt the first ``count`` compressed bytes of one entry."""
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        info = zf.getinfo(name)
    out = bytearray(data)
    name_len, extra_len = struct.unpack("<HH", out[info.header_offset + 26 : info.header_offset + 30])
    start = info.header_offset + 30 + name_len + extra_len
    for i in range(start, start + min(count, info.compress_size)):
        out[i] ^= 0xFF
    return bytes(out)


def test_corrupt_compressed_entry_is_corrupt():
    filler = "".join(f"<a:p><a:r><a:t>line {i}</a:t></a:r></a:p>" for i in range(50))
    data = build_package({1: slide_xml(["{{NAME}}"]).replace("<a:p>", filler + "<a:p>", 1)})
    broken = _flip_payload(data, "ppt/slides/slide1.xml")

    with pytest.raises(ArchiveCorrupt, match="unreadable"):
        open_package(broken)


def test_directory_entries_survive_a_round_trip():
    data = build_zip(
        {
            "[Content_Types].xml": '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
            '<Default Extension="xml" ContentType="application/xml"/></Types>',
            "_rels/.rels": "<Relationships/>",
            "ppt/": b"",
            "ppt/slides/": b"",
            "ppt/slides/slide1.xml": slide_xml(["x"]),
        }
    )
    package = open_package(data)

    assert "ppt/" not in package
    assert package.names == ["[Content_Types].xml", "_rels/.rels", "ppt/slides/slide1.xml"]
    assert [p.path for p in classify(package).parts.values() if p.role is PartRole.OTHER] == [
        "[Content_Types].xml"
    ]

    out = serialize(package)
    assert [i.filename for i, _ in iter_entries(out)] == [i.filename for i, _ in iter_entries(data)]
    assert [i.is_dir() for i, _ in iter_entries(out)] == [False, False, True, True, False]
    assert serialize(package.copy()) == out
