"""History store behaviour: capacity, archiving, mutations and recovery."""

from __future__ import annotations

import os
from pathlib import Path

import orjson
import pytest

from prompt_history.core.errors import (
    CorruptStoreError,
    EntryNotFoundError,
    ImageNotFoundError,
    InvalidPromptError,
    PageNotFoundError,
    StorageIOError,
)
from prompt_history.core.metrics import REGISTRY
from prompt_history.history import HistoryStore


def _read_json(path: Path) -> list[dict]:
    return orjson.loads(path.read_bytes())


def _ids(records: list[dict]) -> list[str]:
    return [record["id"] for record in records]


def _mutations(operation: str, page_kind: str) -> float:
    value = REGISTRY.get_sample_value(
        "phist_mutations_total", {"operation": operation, "page_kind": page_kind}
    )
    return value or 0.0


def test_load_initializes_empty_history(store: HistoryStore, base_dir: Path) -> None:
    assert _read_json(base_dir / "history.json") == []
    assert (base_dir / "History.html").exists()
    assert (base_dir / "images").is_dir()
    assert store.page_keys() == ["live"]


def test_append_assigns_sequential_ids_and_timestamp(store: HistoryStore, base_dir: Path) -> None:
    first = store.append("  hello world  ")
    second = store.append("another prompt")

    assert first.id == "20250102_030405_0001"
    assert second.id == "20250102_030405_0002"
    assert first.ts == "2025-01-02 03:04:05"
    assert first.prompt == "hello world"
    assert _read_json(base_dir / "history.json") == [
        {"id": first.id, "ts": first.ts, "prompt": "hello world", "images": []},
        {"id": second.id, "ts": second.ts, "prompt": "another prompt", "images": []},
    ]


def test_append_rejects_blank_prompt(store: HistoryStore) -> None:
    with pytest.raises(InvalidPromptError):
        store.append("   \n ")
    assert store.list_entries() == []
    assert store.revision == 0


def test_overflow_moves_oldest_entries_into_todays_archive(store: HistoryStore, base_dir: Path) -> None:
    entries = [store.append(f"prompt {index}") for index in range(5)]

    live = _read_json(base_dir / "history.json")
    archive = _read_json(base_dir / "History_20250102.json")
    assert _ids(live) == [entry.id for entry in entries[2:]]
    assert _ids(archive) == [entry.id for entry in entries[:2]]
    assert (base_dir / "History_20250102.html").exists()
    assert store.page_keys() == ["live", "20250102"]


def test_live_page_links_archives_after_first_cut(store: HistoryStore, base_dir: Path) -> None:
    for index in range(4):
        store.append(f"prompt {index}")

    live_html = (base_dir / "History.html").read_text(encoding="utf-8")
    assert 'href="History_20250102.html"' in live_html


def test_archive_cut_on_a_new_day_creates_a_new_archive(store: HistoryStore, clock, base_dir: Path) -> None:
    for index in range(4):
        store.append(f"day one {index}")
    clock.advance(days=1)
    store.append("day two")

    assert len(_read_json(base_dir / "History_20250102.json")) == 1
    assert len(_read_json(base_dir / "History_20250103.json")) == 1
    assert store.page_keys() == ["live", "20250103", "20250102"]
    assert len(store.list_entries()) == 3


def test_zero_capacity_archives_every_append(base_dir: Path, clock) -> None:
    store = HistoryStore(base_dir, 0, clock=clock).load()

    first = store.append("one")
    second = store.append("two")

    assert store.list_entries() == []
    assert _ids(_read_json(base_dir / "History_20250102.json")) == [first.id, second.id]
    assert second.id.endswith("_0002")


def test_overwrite_keeps_timestamp_and_image(store: HistoryStore, clock, png_bytes: bytes) -> None:
    entry = store.append("draft", image=png_bytes, image_name="shot.png")
    clock.advance(minutes=5)

    updated = store.overwrite(entry.id, "final wording")

    assert updated.ts == entry.ts
    assert updated.image == entry.image
    assert store.get(entry.id).prompt == "final wording"


def test_overwrite_reaches_archived_entries(store: HistoryStore, base_dir: Path) -> None:
    entries = [store.append(f"prompt {index}") for index in range(4)]
    archived = entries[0]

    store.overwrite(archived.id, "edited in archive")

    assert store.locate(archived.id) == "20250102"
    assert _read_json(base_dir / "History_20250102.json")[0]["prompt"] == "edited in archive"
    assert "edited in archive" in (base_dir / "History_20250102.html").read_text(encoding="utf-8")


def test_unknown_id_leaves_files_untouched(store: HistoryStore, base_dir: Path) -> None:
    store.append("keep me")
    json_before = (base_dir / "history.json").read_bytes()
    html_before = (base_dir / "History.html").read_bytes()

    with pytest.raises(EntryNotFoundError):
        store.overwrite("20990101_000000_0001", "nope")
    with pytest.raises(EntryNotFoundError):
        store.delete("20990101_000000_0001")

    assert (base_dir / "history.json").read_bytes() == json_before
    assert (base_dir / "History.html").read_bytes() == html_before
    assert store.revision == 1


def test_unknown_page_key_is_rejected(store: HistoryStore) -> None:
    entry = store.append("hello")
    with pytest.raises(PageNotFoundError):
        store.list_entries("19990101")
    with pytest.raises(PageNotFoundError):
        store.overwrite(entry.id, "x", page_key="not-a-page")


def test_entry_is_only_found_on_its_own_page(store: HistoryStore) -> None:
    entries = [store.append(f"prompt {index}") for index in range(4)]
    with pytest.raises(EntryNotFoundError):
        store.get(entries[0].id, page_key="live")
    assert store.get(entries[0].id, page_key="20250102").prompt == "prompt 0"


def test_delete_removes_entry_and_image(store: HistoryStore, base_dir: Path, png_bytes: bytes) -> None:
    entry = store.append("with image", image=png_bytes, image_name="a.PNG")
    image_path = base_dir / entry.image

    assert entry.image == "images/2025/01/20250102_030405_01.png"
    assert image_path.read_bytes() == png_bytes

    removed = store.delete(entry.id)

    assert removed.id == entry.id
    assert not image_path.exists()
    assert store.list_entries() == []


def test_replace_image_swaps_files(store: HistoryStore, base_dir: Path, png_bytes: bytes) -> None:
    entry = store.append("with image", image=png_bytes, image_name="a.png")

    updated = store.replace_image(entry.id, b"RIFF0000WEBP", "b.webp")

    assert updated.image == "images/2025/01/20250102_030405_01.webp"
    assert not (base_dir / entry.image).exists()
    assert store.read_image(entry.id) == (b"RIFF0000WEBP", "image/webp")
    assert _read_json(base_dir / "history.json")[0]["images"] == [updated.image]


def test_read_image_without_image_raises(store: HistoryStore) -> None:
    entry = store.append("plain")
    with pytest.raises(ImageNotFoundError):
        store.read_image(entry.id)


def test_mutations_bump_revision_and_metrics(store: HistoryStore) -> None:
    before = _mutations("append", "live")
    entry = store.append("one")
    store.overwrite(entry.id, "two")
    store.delete(entry.id)

    assert store.revision == 3
    assert _mutations("append", "live") == before + 1


def test_set_server_port_rerenders_pages(store: HistoryStore, base_dir: Path) -> None:
    store.append("hello")
    store.set_server_port(3017)
    assert "http://127.0.0.1:3017" in (base_dir / "History.html").read_text(encoding="utf-8")


def test_corrupt_history_is_reported_not_reset(base_dir: Path, clock) -> None:
    base_dir.mkdir(parents=True)
    (base_dir / "history.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(CorruptStoreError):
        HistoryStore(base_dir, 3, clock=clock).load()

    assert (base_dir / "history.json").read_text(encoding="utf-8") == "{not json"


def test_non_array_history_is_corrupt(base_dir: Path, clock) -> None:
    base_dir.mkdir(parents=True)
    (base_dir / "History_20250101.json").write_text('{"id": "x"}', encoding="utf-8")

    with pytest.raises(CorruptStoreError):
        HistoryStore(base_dir, 3, clock=clock).load()


def test_tolerant_reading_skips_unusable_items(base_dir: Path, clock) -> None:
    base_dir.mkdir(parents=True)
    records = [
        {"id": " 20250101_000000_0001 ", "ts": "2025-01-01 00:00:00", "prompt": " kept "},
        "not an object",
        {"id": "20250101_000000_0002", "ts": "2025-01-01 00:00:00", "prompt": "   "},
        {
            "id": "20250101_000000_0003",
            "ts": "2025-01-01 00:00:00",
            "prompt": "two images",
            "images": ["images/2025/01/old.png", "images/2025/01/new.png"],
        },
    ]
    (base_dir / "history.json").write_bytes(orjson.dumps(records))

    store = HistoryStore(base_dir, 3, clock=clock).load()

    entries = store.list_entries()
    assert [entry.id for entry in entries] == ["20250101_000000_0001", "20250101_000000_0003"]
    assert entries[0].prompt == "kept"
    assert entries[1].image == "images/2025/01/new.png"


def test_overflow_found_at_load_is_archived(base_dir: Path, clock) -> None:
    base_dir.mkdir(parents=True)
    records = [
        {"id": f"20250101_000000_000{index}", "ts": "2025-01-01 00:00:00", "prompt": f"p{index}"}
        for index in range(1, 5)
    ]
    (base_dir / "history.json").write_bytes(orjson.dumps(records))

    store = HistoryStore(base_dir, 2, clock=clock).load()

    assert [entry.id for entry in store.list_entries()] == _ids(records[2:])
    assert _ids(_read_json(base_dir / "History_20250102.json")) == _ids(records[:2])


def test_load_recovers_from_interrupted_archive_cut(base_dir: Path, clock) -> None:
    base_dir.mkdir(parents=True)
    moved = {"id": "20250101_000000_0001", "ts": "2025-01-01 00:00:00", "prompt": "moved"}
    kept = {"id": "20250101_000000_0002", "ts": "2025-01-01 00:00:00", "prompt": "kept"}
    (base_dir / "History_20250101.json").write_bytes(orjson.dumps([moved]))
    (base_dir / "history.json").write_bytes(orjson.dumps([moved, kept]))
    (base_dir / "history.json.tmp").write_bytes(b"[")

    store = HistoryStore(base_dir, 3, clock=clock).load()

    assert [entry.id for entry in store.list_entries()] == [kept["id"]]
    assert _ids(_read_json(base_dir / "history.json")) == [kept["id"]]
    assert not (base_dir / "history.json.tmp").exists()
    assert (base_dir / "History_20250101.html").exists()


def test_failed_live_write_rolls_back_new_archive(
    base_dir: Path, clock, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = HistoryStore(base_dir, 1, clock=clock).load()
    first = store.append("first")
    live_before = (base_dir / "history.json").read_bytes()

    real_replace = os.replace

    def failing_replace(src, dst):
        if Path(dst).name == "history.json":
            raise OSError("disk full")
        return real_replace(src, dst)

    monkeypatch.setattr("prompt_history.storage.atomic.os.replace", failing_replace)

    with pytest.raises(StorageIOError):
        store.append("second")

    assert (base_dir / "history.json").read_bytes() == live_before
    assert not (base_dir / "History_20250102.json").exists()
    assert not list(base_dir.glob("*.tmp"))
    assert [entry.id for entry in store.list_entries()] == [first.id]
    assert store.page_keys() == ["live"]
    assert store.revision == 1


def test_failed_write_discards_new_image(
    store: HistoryStore, base_dir: Path, png_bytes: bytes, monkeypatch: pytest.MonkeyPatch
) -> None:
    entry = store.append("with image", image=png_bytes, image_name="a.png")
    real_replace = os.replace

    def failing_replace(src, dst):
        if Path(dst).name == "history.json":
            raise OSError("locked")
        return real_replace(src, dst)

    monkeypatch.setattr("prompt_history.storage.atomic.os.replace", failing_replace)

    with pytest.raises(StorageIOError):
        store.replace_image(entry.id, png_bytes, "b.png")

    assert store.get(entry.id).image == entry.image
    assert (base_dir / entry.image).exists()
    assert not (base_dir / "images/2025/01/20250102_030405_02.png").exists()


def test_failed_image_delete_keeps_entry(
    store: HistoryStore, base_dir: Path, png_bytes: bytes, monkeypatch: pytest.MonkeyPatch
) -> None:
    entry = store.append("with image", image=png_bytes, image_name="a.png")
    image_path = base_dir / entry.image
    real_unlink = Path.unlink

    def failing_unlink(self, *args, **kwargs):
        if self == image_path:
            raise PermissionError("image is locked")
        return real_unlink(self, *args, **kwargs)

    monkeypatch.setattr(Path, "unlink", failing_unlink)

    with pytest.raises(StorageIOError):
        store.delete(entry.id)

    assert _ids(_read_json(base_dir / "history.json")) == [entry.id]
    assert image_path.read_bytes() == png_bytes
    assert store.get(entry.id).image == entry.image
    assert store.revision == 1


def test_failed_old_image_delete_keeps_current_image(
    store: HistoryStore, base_dir: Path, png_bytes: bytes, monkeypatch: pytest.MonkeyPatch
) -> None:
    entry = store.append("with image", image=png_bytes, image_name="a.png")
    old_path = base_dir / entry.image
    real_unlink = Path.unlink

    def failing_unlink(self, *args, **kwargs):
        if self == old_path:
            raise PermissionError("image is locked")
        return real_unlink(self, *args, **kwargs)

    monkeypatch.setattr(Path, "unlink", failing_unlink)

    with pytest.raises(StorageIOError):
        store.replace_image(entry.id, png_bytes, "b.png")

    assert old_path.exists()
    assert not (base_dir / "images/2025/01/20250102_030405_02.png").exists()
    assert _read_json(base_dir / "history.json")[0]["images"] == [entry.image]


def test_failed_commit_puts_deleted_image_back(
    store: HistoryStore, base_dir: Path, png_bytes: bytes, monkeypatch: pytest.MonkeyPatch
) -> None:
    entry = store.append("with image", image=png_bytes, image_name="a.png")
    real_replace = os.replace

    def failing_replace(src, dst):
        if Path(dst).name == "history.json":
            raise OSError("disk full")
        return real_replace(src, dst)

    monkeypatch.setattr("prompt_history.storage.atomic.os.replace", failing_replace)

    with pytest.raises(StorageIOError):
        store.delete(entry.id)

    assert (base_dir / entry.image).read_bytes() == png_bytes
    assert store.get(entry.id).image == entry.image


def test_delete_tolerates_unusable_image_path(base_dir: Path, clock) -> None:
    base_dir.mkdir(parents=True)
    record = {"id": "20250101_000000_0001", "ts": "2025-01-01 00:00:00", "prompt": "odd", "images": ["."]}
    (base_dir / "history.json").write_bytes(orjson.dumps([record]))
    store = HistoryStore(base_dir, 3, clock=clock).load()

    removed = store.delete(record["id"])

    assert removed.image == "."
    assert _read_json(base_dir / "history.json") == []
    assert store.revision == 1


def test_padded_ids_are_trimmed(store: HistoryStore) -> None:
    entry = store.append("hello")

    assert store.get(f"  {entry.id}\n").id == entry.id
    assert store.overwrite(f" {entry.id} ", "changed").prompt == "changed"
    assert store.delete(f"{entry.id}  ").id == entry.id


def test_load_removes_stale_image_temps(base_dir: Path, clock) -> None:
    month_dir = base_dir / "images" / "2025" / "01"
    month_dir.mkdir(parents=True)
    stale = month_dir / "20250101_000000_01.png.tmp"
    stale.write_bytes(b"partial")
    kept = month_dir / "20250101_000000_01.png"
    kept.write_bytes(b"whole")

    HistoryStore(base_dir, 3, clock=clock).load()

    assert not stale.exists()
    assert kept.exists()
