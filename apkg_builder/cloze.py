"""Cloze deletion helpers.

Deletions use ``{{c1::text}}`` or ``{{c1::text::hint}}``. A cloze note gets one
card per distinct deletion number found in its cloze text fields, with card
ordinal ``number - 1``. The cloze text fields are the ones a template renders
through the ``cloze:`` filter; other fields never produce cards.
"""
from __future__ import annotations

import re
from typing import Iterable

from .types import ModelDefinition, NoteDefinition

CLOZE_RE = re.compile(r"\{\{c(\d+)::", re.IGNORECASE)
_CLOZE_FILTER_RE = re.compile(r"\{\{[^{}]*?\bcloze:\s*([^{}:]+?)\s*\}\}")


def cloze(number: int, text: str) -> str:
    return f"{{{{c{number}::{text}}}}}"


def cloze_hint(number: int, text: str, hint: str) -> str:
    return f"{{{{c{number}::{text}::{hint}}}}}"


def cloze_indices(*texts: str) -> list[int]:
    """Distinct deletion numbers found across ``texts``, ascending. c0 is ignored."""
    found: set[int] = set()
    for text in texts:
        for m in CLOZE_RE.finditer(text or ""):
            n = int(m.group(1))
            if n > 0:
                found.add(n)
    return sorted(found)


def cloze_ordinals(values: Iterable[str]) -> list[int]:
    return [n - 1 for n in cloze_indices(*values)]


def cloze_text_fields(model: ModelDefinition) -> list[str]:
    """Fields rendered through ``{{cloze:Field}}``, in declared order.

    Falls back to the first declared field when no template uses the filter.
    """
    named: set[str] = set()
    for t in model.templates:
        for text in (t.front, t.back):
            named.update(m.group(1) for m in _CLOZE_FILTER_RE.finditer(text or ""))
    fields = [f for f in model.fields if f in named]
    return fields or list(model.fields[:1])


def note_cloze_ordinals(note: NoteDefinition, model: ModelDefinition) -> list[int]:
    return cloze_ordinals(note.fields.get(name, "") for name in cloze_text_fields(model))


class ClozeBuilder:
    """Hands out auto-incrementing deletion numbers.

    >>> b = ClozeBuilder()
    >>> f"{b.add('Paris')} is the capital of {b.add('France')}."
    '{{c1::Paris}} is the capital of {{c2::France}}.'
    """

    def __init__(self) -> None:
        self.counter = 0

    def add(self, text: str) -> str:
        self.counter += 1
        return cloze(self.counter, text)

    def add_with_hint(self, text: str, hint: str) -> str:
        self.counter += 1
        return cloze_hint(self.counter, text, hint)

    @property
    def current(self) -> int:
        return self.counter

    def reset(self) -> None:
        self.counter = 0
