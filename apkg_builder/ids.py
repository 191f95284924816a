"""Deterministic identifiers for models, decks, notes and cards.

Canonical form (changing any of this renumbers every package ever built):

- stable_id(namespace, *parts) = sha1(utf8(namespace + "\\x1f" + "\\x1f".join(parts)))
  first 8 digest bytes, big-endian, masked to 47 bits.
- namespaces: "model", "deck", "note", "card"; integers rendered base-10.
- note key = (deck name, model name, field values in the model's declared order),
  raw values before any Markdown rendering.
- guid = genanki.guid_for(*note key) unless the note supplies one.
"""
from __future__ import annotations

import hashlib
import logging
from collections import defaultdict
from dataclasses import dataclass

import genanki

from .cloze import note_cloze_ordinals
from .errors import Collision, IdCollision
from .sql import DEFAULT_DECK_ID, FIELD_SEPARATOR
from .types import ModelDefinition, NoteDefinition, PackageDefinition

logger = logging.getLogger(__name__)

ID_MASK = 0x7FFF_FFFF_FFFF


def stable_id(namespace: str, *parts: str | int) -> int:
    payload = FIELD_SEPARATOR.join([namespace, *(str(p) for p in parts)]).encode("utf-8")
    digest = hashlib.sha1(payload, usedforsecurity=False).digest()
    return int.from_bytes(digest[:8], "big", signed=False) & ID_MASK


def model_id(name: str) -> int:
    return stable_id("model", name)


def deck_id(name: str) -> int:
    return stable_id("deck", name)


def note_key(note: NoteDefinition, model: ModelDefinition) -> tuple[str, ...]:
    return (note.deck, note.model, *note.ordered_values(model))


def derived_note_id(note: NoteDefinition, model: ModelDefinition) -> int:
    return stable_id("note", *note_key(note, model))


def derived_guid(note: NoteDefinition, model: ModelDefinition) -> str:
    return genanki.guid_for(*note_key(note, model))


def card_id(note_id: int, ordinal: int) -> int:
    return stable_id("card", note_id, ordinal)


def card_ordinals(note: NoteDefinition, model: ModelDefinition) -> list[int]:
    if model.is_cloze:
        return note_cloze_ordinals(note, model)
    return list(range(len(model.templates)))


@dataclass(frozen=True)
class CardSpec:
    id: int
    ordinal: int  # template index, or cloze number - 1


@dataclass(frozen=True)
class IdentifiedNote:
    position: int  # 0-based index in the definition
    note: NoteDefinition
    model: ModelDefinition
    id: int
    guid: str
    model_id: int
    deck_id: int
    cards: tuple[CardSpec, ...]


@dataclass(frozen=True)
class IdentifiedPackage:
    definition: PackageDefinition
    model_ids: dict[str, int]
    deck_ids: dict[str, int]
    notes: tuple[IdentifiedNote, ...]

    @property
    def card_count(self) -> int:
        return sum(len(n.cards) for n in self.notes)


def _collisions(kind: str, owners_by_value: dict[int | str, list[str]]) -> list[Collision]:
    return [
        Collision(kind=kind, value=value, owners=tuple(owners))
        for value, owners in owners_by_value.items()
        if len(owners) > 1
    ]


def derive_ids(definition: PackageDefinition) -> IdentifiedPackage:
    """Assign every id up front. Expects a validated definition.

    Raises IdCollision listing every clash; nothing is renumbered.
    """
    models = {m.name: m for m in definition.models}

    model_owners: dict[int | str, list[str]] = defaultdict(list)
    model_ids: dict[str, int] = {}
    for m in definition.models:
        mid = m.id if m.id is not None else model_id(m.name)
        model_ids[m.name] = mid
        model_owners[mid].append(f"model '{m.name}'")

    deck_owners: dict[int | str, list[str]] = defaultdict(list)
    deck_owners[DEFAULT_DECK_ID].append("deck 'Default'")
    deck_ids: dict[str, int] = {}
    for d in definition.decks:
        did = d.id if d.id is not None else deck_id(d.name)
        deck_ids[d.name] = did
        deck_owners[did].append(f"deck '{d.name}'")

    note_owners: dict[int | str, list[str]] = defaultdict(list)
    guid_owners: dict[int | str, list[str]] = defaultdict(list)
    card_owners: dict[int | str, list[str]] = defaultdict(list)
    notes: list[IdentifiedNote] = []

    for pos, note in enumerate(definition.notes):
        model = models[note.model]
        nid = note.id if note.id is not None else derived_note_id(note, model)
        guid = note.guid if note.guid else derived_guid(note, model)
        label = f"note[{pos}]" + (" (explicit id)" if note.id is not None else "")
        note_owners[nid].append(label)
        guid_owners[guid].append(f"note[{pos}]")

        cards = []
        for ordinal in card_ordinals(note, model):
            cid = card_id(nid, ordinal)
            card_owners[cid].append(f"note[{pos}] card {ordinal}")
            cards.append(CardSpec(id=cid, ordinal=ordinal))

        notes.append(
            IdentifiedNote(
                position=pos,
                note=note,
                model=model,
                id=nid,
                guid=guid,
                model_id=model_ids[note.model],
                deck_id=deck_ids[note.deck],
                cards=tuple(cards),
            )
        )

    collisions = (
        _collisions("model", model_owners)
        + _collisions("deck", deck_owners)
        + _collisions("note", note_owners)
        + _collisions("guid", guid_owners)
        + _collisions("card", card_owners)
    )
    if collisions:
        raise IdCollision(collisions)

    identified = IdentifiedPackage(
        definition=definition,
        model_ids=model_ids,
        deck_ids=deck_ids,
        notes=tuple(notes),
    )
    logger.debug(
        "derived ids: models=%d decks=%d notes=%d cards=%d",
        len(model_ids),
        len(deck_ids),
        len(notes),
        identified.card_count,
    )
    return identified
