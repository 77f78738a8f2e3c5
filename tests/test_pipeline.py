"""End-to-end generation runs."""

from __future__ import annotations

import asyncio
import re
from concurrent.futures import ThreadPoolExecutor

import pytest

from builders import build_deck, build_package, png_bytes, slide_xml
from slidefill.archive import iter_entries, open_package
from slidefill.errors import ArchiveNotFound
from slidefill.pipeline import (
    Failure,
    Success,
    generate,
    generate_async,
    generate_batch,
    list_placeholders,
    output_name,
    render,
)
from slidefill.verify import slide_texts


def test_render_fills_text_and_swaps_image(deck_bytes, record, new_png):
    result = render(deck_bytes, record, image=new_png)

    assert slide_texts(result.data) == [["Hello Ana, born 01/02/1990"]]
    assert result.media.media_path == "ppt/media/image1.png"
    assert not result.needs_attention
    media = {i.filename: data for i, data in iter_entries(result.data)}
    assert media["ppt/media/image1.png"] == new_png


def test_empty_record_repackages_byte_identical_parts(deck_bytes):
    result = render(deck_bytes, {})

    before = list(iter_entries(deck_bytes))
    after = list(iter_entries(result.data))
    assert [(i.filename, d) for i, d in before] == [(i.filename, d) for i, d in after]
    assert [i.compress_type for i, _ in before] == [i.compress_type for i, _ in after]
    assert result.report.total_unresolved == 2


def test_missing_image_target_keeps_text_substitution(record):
    data = build_package({1: slide_xml(["{{NAME}}"])})
    result = render(data, record, image=png_bytes())

    assert result.partial
    assert result.media is None
    assert result.media_error.code == "NO_MEDIA_CANDIDATE"
    assert result.report.total_resolved == 1


def test_generate_writes_output_and_leaves_template_alone(tmp_path, deck_path, record, new_png):
    template_bytes = deck_path.read_bytes()
    image_path = tmp_path / "photo.png"
    image_path.write_bytes(new_png)
    output = tmp_path / "out" / "ana.pptx"

    result = generate(deck_path, record, output, image=image_path)

    assert result.output == output
    assert output.read_bytes() == render(deck_path, record, image=new_png).data
    assert deck_path.read_bytes() == template_bytes
    # no temporary files left next to the output
    assert [p.name for p in output.parent.iterdir()] == ["ana.pptx"]


def test_missing_template_is_fatal(tmp_path, record):
    with pytest.raises(ArchiveNotFound):
        generate(tmp_path / "missing.pptx", record, tmp_path / "out.pptx")
    assert not (tmp_path / "out.pptx").exists()


def test_generate_async(tmp_path, deck_bytes, record):
    output = tmp_path / "async.pptx"
    result = asyncio.run(generate_async(deck_bytes, record, output))
    assert result.report.total_resolved == 2
    assert output.exists()


def test_concurrent_runs_share_one_template(deck_path):
    names = ["Ana", "Bruno", "Carla", "Diego"]
    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(lambda n: render(deck_path, {"NAME": n, "BIRTH_DATE": "x"}), names))

    texts = [slide_texts(r.data)[0][0] for r in results]
    assert texts == [f"Hello {n}, born x" for n in names]


def test_batch_continues_past_record_failures(tmp_path, deck_path, new_png):
    records = [{"NAME": "Ana"}, {"NAME": "Bruno"}, {"NAME": "Carla"}]
    images = [new_png, tmp_path / "no-such-photo.png", None]

    batch = generate_batch(deck_path, records, tmp_path / "decks", images=images)

    assert batch.total == 3
    assert batch.success_count == 2
    [failure] = batch.failures
    assert isinstance(failure, Failure)
    assert failure.index == 1
    successes = [o for o in batch.outcomes if isinstance(o, Success)]
    assert [s.index for s in successes] == [0, 2]
    assert all(s.output.exists() for s in successes)
    assert "Ana" in successes[0].output.name


def test_batch_with_missing_template_aborts(tmp_path):
    with pytest.raises(ArchiveNotFound):
        generate_batch(tmp_path / "missing.pptx", [{"NAME": "Ana"}], tmp_path / "decks")
    assert not (tmp_path / "decks").exists()


def test_output_name_is_sanitized_and_unique():
    first = output_name("José da Silva")
    second = output_name("José da Silva")

    assert first != second
    assert re.fullmatch(r"presentation_Jose_da_Silva_\d+_[0-9a-f]{8}\.pptx", first)
    assert output_name("///").startswith("presentation_untitled_")
    assert output_name("x", extension="zip", prefix="deck").startswith("deck_x_")


def test_list_placeholders():
    data = build_deck(runs=[("{{NAME}} / {{FOO}} / {{NA", False), ("ME}}", True)], picture=False)
    assert list_placeholders(data) == ["FOO", "NAME"]
    assert list_placeholders(open_package(data)) == ["FOO", "NAME"]


def test_no_media_candidate_is_returned_not_raised():
    data = build_package({1: slide_xml(["{{NAME}}"])})
    result = render(data, {}, image=png_bytes())

    assert result.partial
    before = dict((i.filename, d) for i, d in iter_entries(data))
    after = dict((i.filename, d) for i, d in iter_entries(result.data))
    assert after == before
