from __future__ import annotations

import io
import json
import logging
import os
import tempfile
import zipfile
from pathlib import Path
from typing import BinaryIO

from .errors import IoFailure
from .media import MediaBundle

logger = logging.getLogger(__name__)

COLLECTION_MEMBER = "collection.anki2"
MEDIA_MEMBER = "media"

# Fixed member timestamp keeps the container reproducible.
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


def _member(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=_ZIP_EPOCH)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = 0o644 << 16
    return info


def write_archive_to(
    fileobj: BinaryIO,
    db_path: str | Path,
    media: MediaBundle,
) -> None:
    """Write collection, manifest and numbered payloads into an open binary stream."""
    with zipfile.ZipFile(fileobj, "w", compression=zipfile.ZIP_DEFLATED) as z:
        with open(db_path, "rb") as f, z.open(_member(COLLECTION_MEMBER), "w") as out:
            _copy(f, out)

        manifest = json.dumps(media.manifest, ensure_ascii=False)
        z.writestr(_member(MEDIA_MEMBER), manifest.encode("utf-8"))

        for entry in media.entries:
            with open(entry.staged_path, "rb") as f, z.open(_member(str(entry.index)), "w") as out:
                _copy(f, out)


def _copy(src: BinaryIO, dst: BinaryIO, chunk: int = 1024 * 1024) -> None:
    while True:
        buf = src.read(chunk)
        if not buf:
            return
        dst.write(buf)


def write_archive(
    out_path: str | Path,
    db_path: str | Path,
    media: MediaBundle,
) -> int:
    """Write the package to ``out_path`` atomically. Returns the archive size in bytes.

    The archive is written to a sibling temp file and renamed into place only
    after it is complete; on any failure nothing exists at ``out_path``.
    """
    out_path = Path(out_path)
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{out_path.name}.", suffix=".tmp", dir=out_path.parent)
    except OSError as e:
        raise IoFailure(out_path, e) from e

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            write_archive_to(f, db_path, media)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, out_path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise IoFailure(out_path, e) from e
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    size = out_path.stat().st_size
    logger.info("wrote %s (%d bytes, %d media)", out_path, size, len(media.entries))
    return size


def archive_bytes(db_path: str | Path, media: MediaBundle) -> bytes:
    buf = io.BytesIO()
    try:
        write_archive_to(buf, db_path, media)
    except OSError as e:
        raise IoFailure(db_path, e) from e
    return buf.getvalue()
