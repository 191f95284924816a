from __future__ import annotations

import io
import shutil
import sqlite3
import tempfile
import zipfile
from pathlib import Path
from typing import Callable

import pytest

from apkg_builder.types import (
    DeckDefinition,
    MediaReference,
    ModelDefinition,
    ModelKind,
    NoteDefinition,
    PackageDefinition,
    TemplateDefinition,
)


@pytest.fixture
def workspace_dir() -> Path:
    """Create temporary workspace."""
    tmp = tempfile.mkdtemp()
    yield Path(tmp)
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def basic_model() -> ModelDefinition:
    return ModelDefinition(
        name="Basic",
        fields=("Front", "Back"),
        templates=(TemplateDefinition(name="Card 1", front="{{Front}}", back="{{FrontSide}}<hr id=answer>{{Back}}"),),
    )


@pytest.fixture
def cloze_model() -> ModelDefinition:
    return ModelDefinition(
        name="Cloze",
        fields=("Text", "Extra"),
        templates=(TemplateDefinition(name="Cloze", front="{{cloze:Text}}", back="{{cloze:Text}}<br>{{Extra}}"),),
        kind=ModelKind.CLOZE,
    )


@pytest.fixture
def spanish_definition(basic_model: ModelDefinition) -> PackageDefinition:
    return PackageDefinition(
        name="Spanish Vocabulary",
        models=(basic_model,),
        decks=(DeckDefinition(name="Spanish", description="Core words"),),
        notes=(
            NoteDefinition(deck="Spanish", model="Basic", fields={"Front": "hola", "Back": "hello"}, tags=("greeting",)),
        ),
    )


@pytest.fixture
def media_definition(basic_model: ModelDefinition, workspace_dir: Path) -> PackageDefinition:
    """One note referencing an image and a sound staged under workspace_dir/src."""
    src = workspace_dir / "src"
    src.mkdir()
    (src / "cat.jpg").write_bytes(b"\xff\xd8\xff\xe0fake-jpeg")
    (src / "gato.mp3").write_bytes(b"ID3fake-mp3")
    return PackageDefinition(
        name="Media",
        models=(basic_model,),
        decks=(DeckDefinition(name="Spanish"),),
        notes=(
            NoteDefinition(
                deck="Spanish",
                model="Basic",
                fields={"Front": '<img src="cat.jpg">', "Back": "el gato [sound:gato.mp3]"},
            ),
        ),
        media=(
            MediaReference(filename="cat.jpg", path=str(src / "cat.jpg")),
            MediaReference(filename="gato.mp3", path="gato.mp3"),
        ),
    )


@pytest.fixture
def open_collection(workspace_dir: Path) -> Callable[[Path | bytes], sqlite3.Connection]:
    """Extract collection.anki2 from an .apkg (path or bytes) and open it."""
    conns: list[sqlite3.Connection] = []

    def _open(apkg: Path | bytes) -> sqlite3.Connection:
        source = io.BytesIO(apkg) if isinstance(apkg, bytes) else apkg
        with zipfile.ZipFile(source) as z:
            db = workspace_dir / f"extracted_{len(conns)}.anki2"
            db.write_bytes(z.read("collection.anki2"))
        conn = sqlite3.connect(db)
        conns.append(conn)
        return conn

    yield _open
    for c in conns:
        c.close()
