"""Import a definition straight into a running Anki instance.

The transport (e.g. an AnkiConnect client) is supplied by the caller; this
module only decides what to create and in which order.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from .builder import prepare
from .errors import MediaMissing
from .markup import markdown_to_html
from .types import ModelDefinition, PackageDefinition
from .utils import resolve_source_path

logger = logging.getLogger(__name__)


class LiveClient(Protocol):
    def deck_names(self) -> list[str]: ...

    def create_deck(self, name: str) -> int: ...

    def model_names(self) -> list[str]: ...

    def create_model(
        self, name: str, fields: list[str], templates: list[dict[str, str]], css: str | None, is_cloze: bool
    ) -> Any: ...

    def store_media_file(self, filename: str, path: str) -> str: ...

    def add_note(self, note: dict[str, Any]) -> int | None: ...


@dataclass
class ImportResult:
    decks_created: int = 0
    models_created: int = 0
    media_stored: int = 0
    notes_created: int = 0
    notes_skipped: int = 0
    errors: dict[int, str] = field(default_factory=dict)  # note position -> message


def _note_payload(model: ModelDefinition, deck: str, fields: dict[str, str], tags: tuple[str, ...]) -> dict[str, Any]:
    rendered = {
        name: markdown_to_html(fields[name]) if name in model.markdown_fields else fields[name] for name in model.fields
    }
    return {
        "deckName": deck,
        "modelName": model.name,
        "fields": rendered,
        "tags": list(tags),
        "options": {"allowDuplicate": False},
    }


class LiveImporter:
    """Creates decks, models, media and notes through a live client.

    Reuses validation and id derivation, but skips the collection, media bundle
    and archive stages. Per-note failures are collected, not raised.
    """

    def __init__(self, definition: PackageDefinition, client: LiveClient, *, media_dir: str | Path | None = None):
        self.definition = definition
        self.client = client
        self.media_dir = media_dir

    def run(self) -> ImportResult:
        pkg = prepare(self.definition)
        result = ImportResult()

        # Check media before touching the target collection.
        sources = []
        for ref in self.definition.media:
            src = resolve_source_path(ref.path, self.media_dir)
            if not src.is_file():
                raise MediaMissing(src, ref.filename)
            sources.append((ref.filename, src))

        existing_decks = set(self.client.deck_names())
        for deck in self.definition.decks:
            if deck.name not in existing_decks:
                self.client.create_deck(deck.name)
                result.decks_created += 1

        existing_models = set(self.client.model_names())
        for model in self.definition.models:
            if model.name in existing_models:
                continue
            self.client.create_model(
                model.name,
                list(model.fields),
                [{"Name": t.name, "Front": t.front, "Back": t.back} for t in model.templates],
                model.css,
                model.is_cloze,
            )
            result.models_created += 1

        for filename, src in sources:
            self.client.store_media_file(filename, str(src))
            result.media_stored += 1

        for n in pkg.notes:
            payload = _note_payload(n.model, n.note.deck, n.note.fields, n.note.tags)
            try:
                created = self.client.add_note(payload)
            except Exception as e:  # recorded per note
                result.notes_skipped += 1
                result.errors[n.position] = str(e)
                continue
            if created is None:
                result.notes_skipped += 1
                result.errors[n.position] = "note was not added"
            else:
                result.notes_created += 1

        logger.info(
            "live import: decks_created=%d models_created=%d notes_created=%d notes_skipped=%d",
            result.decks_created,
            result.models_created,
            result.notes_created,
            result.notes_skipped,
        )
        return result
