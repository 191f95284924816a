"""Deck-definition to .apkg package builder.

Turns a typed package definition (models, decks, notes, media) into a single
.apkg file that Anki imports directly:
- validate the definition and report every problem at once
- derive deterministic ids so rebuilds are reproducible
- write the legacy collection database and media bundle
- zip everything and rename into place atomically

Live import through a running Anki instance reuses the first two steps.
"""

from __future__ import annotations

from .builder import BuildStats, PackageBuilder, build_package
from .errors import (
    BuildError,
    DefinitionInvalid,
    IdCollision,
    IoFailure,
    MediaMissing,
    UnsupportedSchemaFeature,
)
from .types import (
    DeckDefinition,
    MediaReference,
    ModelDefinition,
    ModelKind,
    NoteDefinition,
    PackageDefinition,
    TemplateDefinition,
    load_definition,
)

__all__ = [
    "__version__",
    "BuildError",
    "BuildStats",
    "DeckDefinition",
    "DefinitionInvalid",
    "IdCollision",
    "IoFailure",
    "MediaMissing",
    "MediaReference",
    "ModelDefinition",
    "ModelKind",
    "NoteDefinition",
    "PackageBuilder",
    "PackageDefinition",
    "TemplateDefinition",
    "UnsupportedSchemaFeature",
    "build_package",
    "load_definition",
]

__version__ = "0.1.0"
