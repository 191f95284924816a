from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from .errors import IoFailure, MediaMissing
from .types import MediaReference
from .utils import ensure_dir, resolve_source_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StagedMedia:
    index: int
    filename: str  # original name, as referenced from fields
    source: Path
    staged_path: Path  # <staging_dir>/<index>
    size: int


@dataclass
class MediaBundle:
    entries: list[StagedMedia] = field(default_factory=list)

    @property
    def manifest(self) -> dict[str, str]:
        """Archive member name -> original filename."""
        return {str(e.index): e.filename for e in self.entries}

    @property
    def total_bytes(self) -> int:
        return sum(e.size for e in self.entries)


def stage_media(
    media: tuple[MediaReference, ...] | list[MediaReference],
    staging_dir: str | Path,
    *,
    base_dir: str | Path | None = None,
) -> MediaBundle:
    """Copy every media source into ``staging_dir`` under sequential integer names.

    Field text is left alone; the importer links ``<img src="cat.jpg">`` to the
    payload through the manifest filename.
    """
    staging_dir = Path(staging_dir)
    ensure_dir(staging_dir)

    bundle = MediaBundle()
    for index, ref in enumerate(media):
        src = resolve_source_path(ref.path, base_dir)
        dst = staging_dir / str(index)
        try:
            fsrc = open(src, "rb")
        except OSError as e:
            raise MediaMissing(src, ref.filename) from e

        with fsrc:
            try:
                with open(dst, "wb") as fdst:
                    shutil.copyfileobj(fsrc, fdst)
            except OSError as e:
                raise IoFailure(dst, e) from e

        size = dst.stat().st_size
        bundle.entries.append(StagedMedia(index=index, filename=ref.filename, source=src, staged_path=dst, size=size))
        logger.debug("staged media %d: %s (%d bytes)", index, ref.filename, size)

    return bundle
