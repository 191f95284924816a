from __future__ import annotations

import logging
import sqlite3
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from .archive import archive_bytes, write_archive
from .collection import Timestamps, write_collection_file
from .config import BuilderConfig
from .errors import IoFailure
from .ids import IdentifiedPackage, derive_ids
from .media import MediaBundle, stage_media
from .types import PackageDefinition
from .utils import now_seconds
from .validator import validate_definition

logger = logging.getLogger(__name__)


@dataclass
class BuildStats:
    models: int = 0
    decks: int = 0
    notes: int = 0
    cards: int = 0
    media_files: int = 0
    media_bytes: int = 0
    archive_bytes: int = 0
    out_path: str | None = None


def prepare(definition: PackageDefinition) -> IdentifiedPackage:
    """Validate and assign ids; shared by file output and live import."""
    return derive_ids(validate_definition(definition))


class PackageBuilder:
    """Builds an .apkg from a package definition.

    Stages run strictly in order: validate, derive ids, stage media, write the
    collection, then archive. Media is read before anything is written to the
    destination, so a missing file never leaves a partial package behind.
    """

    def __init__(
        self,
        definition: PackageDefinition,
        *,
        config: BuilderConfig | None = None,
        media_dir: str | Path | None = None,
        clock: Callable[[], int] = now_seconds,
    ):
        self.definition = definition
        self.config = config or BuilderConfig()
        self.media_dir = media_dir if media_dir is not None else self.config.media_dir
        self.clock = clock

    def _timestamps(self) -> Timestamps:
        # Only crt follows the clock; every other stamp is pinned by config.
        return Timestamps(crt=int(self.clock()), mod=int(self.config.mod_time))

    def _stats(self, pkg: IdentifiedPackage, media: MediaBundle, cards: int) -> BuildStats:
        return BuildStats(
            models=len(pkg.definition.models),
            decks=len(pkg.definition.decks),
            notes=len(pkg.notes),
            cards=cards,
            media_files=len(media.entries),
            media_bytes=media.total_bytes,
        )

    def _build(self, workdir: Path) -> tuple[IdentifiedPackage, MediaBundle, Path, BuildStats]:
        pkg = prepare(self.definition)
        logger.info(
            "building %r: %d model(s), %d deck(s), %d note(s)",
            self.definition.name,
            len(pkg.definition.models),
            len(pkg.definition.decks),
            len(pkg.notes),
        )

        media = stage_media(self.definition.media, workdir / "media", base_dir=self.media_dir)

        db_path = workdir / "collection.anki2"
        try:
            cards = write_collection_file(db_path, pkg, self._timestamps(), self.config)
        except sqlite3.Error as e:
            raise IoFailure(db_path, e) from e

        return pkg, media, db_path, self._stats(pkg, media, cards)

    def write_to_file(self, out_path: str | Path) -> BuildStats:
        with tempfile.TemporaryDirectory(prefix="apkg_build_") as tmp:
            _, media, db_path, stats = self._build(Path(tmp))
            stats.archive_bytes = write_archive(out_path, db_path, media)
        stats.out_path = str(out_path)
        return stats

    def to_bytes(self) -> bytes:
        with tempfile.TemporaryDirectory(prefix="apkg_build_") as tmp:
            _, media, db_path, _ = self._build(Path(tmp))
            return archive_bytes(db_path, media)


def build_package(
    definition: PackageDefinition,
    out_path: str | Path,
    *,
    config: BuilderConfig | None = None,
    media_dir: str | Path | None = None,
) -> BuildStats:
    return PackageBuilder(definition, config=config, media_dir=media_dir).write_to_file(out_path)
