"""Media staging and archive writing."""
from __future__ import annotations

import io
import json
import zipfile
from pathlib import Path

import pytest

from apkg_builder.archive import archive_bytes, write_archive
from apkg_builder.errors import IoFailure, MediaMissing
from apkg_builder.media import MediaBundle, stage_media
from apkg_builder.types import MediaReference


@pytest.fixture
def sources(workspace_dir: Path) -> Path:
    src = workspace_dir / "src"
    src.mkdir()
    (src / "a.png").write_bytes(b"PNG-A")
    (src / "b.ogg").write_bytes(b"OGG-BB")
    return src


@pytest.fixture
def db_file(workspace_dir: Path) -> Path:
    p = workspace_dir / "collection.anki2"
    p.write_bytes(b"SQLite format 3\x00fake")
    return p


# ═══════════════════════════════════════════════════════════════════════════════
# MEDIA PACKAGER
# ═══════════════════════════════════════════════════════════════════════════════

class TestStageMedia:
    def test_sequential_names_and_manifest(self, sources: Path, workspace_dir: Path):
        refs = [MediaReference("a.png", "a.png"), MediaReference("weird name?.ogg", str(sources / "b.ogg"))]
        bundle = stage_media(refs, workspace_dir / "staged", base_dir=sources)

        assert bundle.manifest == {"0": "a.png", "1": "weird name?.ogg"}
        assert [e.staged_path.name for e in bundle.entries] == ["0", "1"]
        assert (workspace_dir / "staged" / "1").read_bytes() == b"OGG-BB"
        assert bundle.total_bytes == 11

    def test_empty(self, workspace_dir: Path):
        bundle = stage_media([], workspace_dir / "staged")
        assert bundle.manifest == {}

    def test_missing_source(self, sources: Path, workspace_dir: Path):
        refs = [MediaReference("a.png", "a.png"), MediaReference("gone.mp3", "gone.mp3")]
        with pytest.raises(MediaMissing) as exc:
            stage_media(refs, workspace_dir / "staged", base_dir=sources)
        assert exc.value.path == sources / "gone.mp3"
        assert exc.value.filename == "gone.mp3"

    def test_directory_is_not_media(self, sources: Path, workspace_dir: Path):
        with pytest.raises(MediaMissing):
            stage_media([MediaReference("dir", str(sources))], workspace_dir / "staged")


# ═══════════════════════════════════════════════════════════════════════════════
# ARCHIVE WRITER
# ═══════════════════════════════════════════════════════════════════════════════

class TestArchive:
    def test_members(self, sources: Path, workspace_dir: Path, db_file: Path):
        bundle = stage_media([MediaReference("a.png", "a.png")], workspace_dir / "staged", base_dir=sources)
        out = workspace_dir / "deck.apkg"
        size = write_archive(out, db_file, bundle)

        assert size == out.stat().st_size
        with zipfile.ZipFile(out) as z:
            assert z.namelist() == ["collection.anki2", "media", "0"]
            assert json.loads(z.read("media")) == {"0": "a.png"}
            assert z.read("0") == b"PNG-A"
            assert z.read("collection.anki2") == db_file.read_bytes()
            assert all(i.compress_type == zipfile.ZIP_DEFLATED for i in z.infolist())

    def test_no_media_manifest_is_empty_object(self, workspace_dir: Path, db_file: Path):
        data = archive_bytes(db_file, MediaBundle())
        with zipfile.ZipFile(io.BytesIO(data)) as z:
            assert z.read("media") == b"{}"

    def test_reproducible_container(self, workspace_dir: Path, db_file: Path):
        assert archive_bytes(db_file, MediaBundle()) == archive_bytes(db_file, MediaBundle())

    def test_creates_parent_dirs(self, workspace_dir: Path, db_file: Path):
        out = workspace_dir / "nested" / "deeper" / "deck.apkg"
        write_archive(out, db_file, MediaBundle())
        assert out.is_file()

    def test_failure_leaves_nothing(self, workspace_dir: Path):
        out = workspace_dir / "out" / "deck.apkg"
        with pytest.raises(IoFailure):
            write_archive(out, workspace_dir / "missing.anki2", MediaBundle())
        assert not out.exists()
        assert list((workspace_dir / "out").iterdir()) == []

    def test_failure_keeps_previous_file(self, workspace_dir: Path):
        out = workspace_dir / "deck.apkg"
        out.write_bytes(b"previous")
        with pytest.raises(IoFailure):
            write_archive(out, workspace_dir / "missing.anki2", MediaBundle())
        assert out.read_bytes() == b"previous"
