"""Writes the legacy collection database from an id-assigned package."""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import genanki

from .cloze import cloze_text_fields
from .config import BuilderConfig
from .ids import IdentifiedNote, IdentifiedPackage
from .markup import field_checksum, markdown_to_html, strip_html_media
from .sql import (
    DEFAULT_DECK_ID,
    FIELD_SEPARATOR,
    INSERT_CARD,
    INSERT_COL,
    INSERT_NOTE,
    LATEX_POST,
    LATEX_PRE,
    SCHEMA,
    SCHEMA_VERSION,
    deck_entry,
    default_conf,
    default_dconf,
)
from .types import ModelDefinition
from .utils import dump_json
from .validator import template_field_refs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Timestamps:
    crt: int  # collection creation, seconds
    mod: int  # modification stamp for notes/cards/catalogs, seconds


def _requirements(model: ModelDefinition) -> list[list[Any]]:
    # Which fields must be non-empty for each card to be generated (Anki's "req").
    if model.is_cloze:
        idxs = [model.fields.index(f) for f in cloze_text_fields(model)] or [0]
        return [[0, "any", idxs]]

    out: list[list[Any]] = []
    for ord_, t in enumerate(model.templates):
        refs = template_field_refs(t.front)
        idxs = [i for i, f in enumerate(model.fields) if f in refs]
        out.append([ord_, "any", idxs or [0]])
    return out


def build_models_json(pkg: IdentifiedPackage, ts: Timestamps, cfg: BuilderConfig) -> dict[str, Any]:
    first_deck: dict[str, int] = {}
    for n in pkg.notes:
        first_deck.setdefault(n.note.model, n.deck_id)

    models: dict[str, Any] = {}
    for model in pkg.definition.models:
        mid = pkg.model_ids[model.name]
        models[str(mid)] = {
            "id": mid,
            "name": model.name,
            "type": genanki.Model.CLOZE if model.is_cloze else genanki.Model.FRONT_BACK,
            "mod": ts.mod,
            "usn": -1,
            "sortf": model.sort_field_index,
            "did": first_deck.get(model.name, DEFAULT_DECK_ID),
            "tmpls": [
                {
                    "name": t.name,
                    "ord": i,
                    "qfmt": t.front,
                    "afmt": t.back,
                    "bqfmt": "",
                    "bafmt": "",
                    "did": None,
                    "bfont": "",
                    "bsize": 0,
                }
                for i, t in enumerate(model.templates)
            ],
            "flds": [
                {
                    "name": name,
                    "ord": i,
                    "sticky": False,
                    "rtl": False,
                    "font": cfg.field_font,
                    "size": cfg.field_size,
                    "media": [],
                }
                for i, name in enumerate(model.fields)
            ],
            "css": model.css if model.css is not None else cfg.default_css,
            "latexPre": LATEX_PRE,
            "latexPost": LATEX_POST,
            "latexsvg": False,
            "req": _requirements(model),
            "tags": [],
            "vers": [],
        }
    return models


def build_decks_json(pkg: IdentifiedPackage, ts: Timestamps) -> dict[str, Any]:
    decks: dict[str, Any] = {str(DEFAULT_DECK_ID): deck_entry(DEFAULT_DECK_ID, "Default", "", ts.mod)}
    for deck in pkg.definition.decks:
        did = pkg.deck_ids[deck.name]
        decks[str(did)] = deck_entry(did, deck.name, deck.description or "", ts.mod)
    return decks


def note_row(n: IdentifiedNote, ts: Timestamps) -> tuple[Any, ...]:
    model = n.model
    values = []
    for name in model.fields:
        v = n.note.fields[name]
        values.append(markdown_to_html(v) if name in model.markdown_fields else v)

    sort_value = values[model.sort_field_index]
    return (
        n.id,
        n.guid,
        n.model_id,
        ts.mod,
        n.note.tags_string(),
        FIELD_SEPARATOR.join(values),
        strip_html_media(sort_value),
        field_checksum(sort_value),
    )


def write_collection(conn: sqlite3.Connection, pkg: IdentifiedPackage, ts: Timestamps, cfg: BuilderConfig) -> int:
    """Create the schema and insert every row. Returns the number of cards written."""
    conn.executescript(SCHEMA)

    next_pos = len(pkg.notes) + 1
    conn.execute(
        INSERT_COL,
        (
            ts.crt,
            ts.mod * 1000,
            ts.mod * 1000,
            SCHEMA_VERSION,
            dump_json(default_conf(next_pos)),
            dump_json(build_models_json(pkg, ts, cfg)),
            dump_json(build_decks_json(pkg, ts)),
            dump_json(default_dconf(cfg.new_per_day)),
        ),
    )

    cards = 0
    for n in pkg.notes:
        conn.execute(INSERT_NOTE, note_row(n, ts))
        due = n.position + 1
        for card in n.cards:
            conn.execute(INSERT_CARD, (card.id, n.id, n.deck_id, card.ordinal, ts.mod, due))
            cards += 1
        logger.debug("note %d: %d card(s)", n.id, len(n.cards))

    conn.commit()
    return cards


def write_collection_file(db_path: str | Path, pkg: IdentifiedPackage, ts: Timestamps, cfg: BuilderConfig) -> int:
    conn = sqlite3.connect(str(db_path))
    try:
        return write_collection(conn, pkg, ts, cfg)
    finally:
        conn.close()
