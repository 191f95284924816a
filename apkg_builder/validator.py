from __future__ import annotations

import json
import re
import sqlite3
import tempfile
import zipfile
from collections import Counter
from html import unescape
from pathlib import Path
from typing import Any

from .cloze import note_cloze_ordinals
from .errors import DefinitionInvalid, UnsupportedSchemaFeature, ValidationIssue
from .sql import FIELD_SEPARATOR
from .types import DECK_SEPARATOR, ModelDefinition, PackageDefinition

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")

# Names the importing application fills in itself.
SPECIAL_FIELDS = frozenset({"FrontSide", "Tags", "Type", "Deck", "Subdeck", "Card", "CardFlag", "CardID"})

UNSUPPORTED = "unsupported_feature"


def template_field_refs(text: str) -> set[str]:
    """Field names a template refers to, with filters and section markers removed."""
    refs: set[str] = set()
    for m in _PLACEHOLDER_RE.finditer(text or ""):
        token = m.group(1).strip()
        if token.startswith(("#", "^", "/")):
            token = token[1:].strip()
        if token.startswith("!"):
            continue
        name = token.split(":")[-1].strip()
        if name and name not in SPECIAL_FIELDS:
            refs.add(name)
    return refs


def _duplicates(names: list[str]) -> list[str]:
    return sorted(n for n, c in Counter(names).items() if c > 1)


def _validate_model(model: ModelDefinition, issues: list[ValidationIssue]) -> None:
    subject = f"model '{model.name}'"

    if not model.name.strip():
        issues.append(ValidationIssue("empty_name", subject, "model name must be non-empty"))

    if model.id is not None and model.id <= 0:
        issues.append(ValidationIssue("invalid_model_id", subject, f"explicit id must be positive, got {model.id}"))

    if not model.fields:
        issues.append(ValidationIssue("no_fields", subject, "declares no fields"))

    for name in _duplicates(list(model.fields)):
        issues.append(ValidationIssue("duplicate_field", subject, f"field {name!r} declared more than once"))

    if not model.templates:
        issues.append(ValidationIssue("no_templates", subject, "declares zero templates"))

    if model.sort_field is not None and model.sort_field not in model.fields:
        issues.append(ValidationIssue("unknown_sort_field", subject, f"sort field {model.sort_field!r} is not a field"))

    for name in model.markdown_fields:
        if name not in model.fields:
            issues.append(ValidationIssue("unknown_markdown_field", subject, f"markdown field {name!r} is not a field"))

    declared = set(model.fields)
    for t in model.templates:
        unknown = (template_field_refs(t.front) | template_field_refs(t.back)) - declared
        for name in sorted(unknown):
            issues.append(
                ValidationIssue(UNSUPPORTED, subject, f"template {t.name!r} references undeclared field {name!r}")
            )


def _validate_deck_name(name: str, issues: list[ValidationIssue]) -> None:
    parts = name.split(DECK_SEPARATOR)
    if not name.strip() or any(not p.strip() for p in parts):
        issues.append(ValidationIssue("invalid_deck_name", f"deck '{name}'", "empty name or empty '::' segment"))


def collect_issues(definition: PackageDefinition) -> list[ValidationIssue]:
    """Every structural problem in ``definition``; empty when it can be built."""
    issues: list[ValidationIssue] = []

    for name in _duplicates([m.name for m in definition.models]):
        issues.append(ValidationIssue("duplicate_model", f"model '{name}'", "model name declared more than once"))
    for name in _duplicates([d.name for d in definition.decks]):
        issues.append(ValidationIssue("duplicate_deck", f"deck '{name}'", "deck name declared more than once"))

    for model in definition.models:
        _validate_model(model, issues)
    for deck in definition.decks:
        _validate_deck_name(deck.name, issues)
        if deck.id is not None and deck.id <= 0:
            issues.append(
                ValidationIssue("invalid_deck_id", f"deck '{deck.name}'", f"explicit id must be positive, got {deck.id}")
            )

    models = {m.name: m for m in definition.models}
    decks = {d.name for d in definition.decks}

    for idx, note in enumerate(definition.notes):
        subject = f"note[{idx}]"

        if note.deck not in decks:
            issues.append(ValidationIssue("unknown_deck", subject, f"deck {note.deck!r} is not declared"))

        if note.id is not None and note.id <= 0:
            issues.append(ValidationIssue("invalid_note_id", subject, f"explicit id must be positive, got {note.id}"))

        for tag in note.tags:
            if not tag or any(ch.isspace() for ch in tag):
                issues.append(ValidationIssue("invalid_tag", subject, f"tag {tag!r} is empty or contains whitespace"))

        for name, value in note.fields.items():
            if FIELD_SEPARATOR in value:
                issues.append(
                    ValidationIssue("reserved_separator", subject, f"field {name!r} contains the 0x1f separator")
                )

        model = models.get(note.model)
        if model is None:
            issues.append(ValidationIssue("unknown_model", subject, f"model {note.model!r} is not declared"))
            continue

        expected = set(model.fields)
        given = set(note.fields)
        missing = [f for f in model.fields if f not in given]
        unexpected = sorted(given - expected)
        if missing:
            issues.append(
                ValidationIssue("missing_fields", subject, f"missing field(s) for model {model.name!r}: {', '.join(missing)}")
            )
        if unexpected:
            issues.append(
                ValidationIssue(
                    "unexpected_fields", subject, f"unexpected field(s) for model {model.name!r}: {', '.join(unexpected)}"
                )
            )

        if model.is_cloze and not note_cloze_ordinals(note, model):
            issues.append(ValidationIssue("no_cloze", subject, "cloze text field(s) contain no {{cN::...}} deletion"))

    for name in _duplicates([m.filename for m in definition.media]):
        issues.append(ValidationIssue("duplicate_media", f"media '{name}'", "filename declared more than once"))
    for m in definition.media:
        if not m.filename.strip() or "/" in m.filename or "\\" in m.filename:
            issues.append(
                ValidationIssue("invalid_media_name", f"media '{m.filename}'", "filename is empty or contains a path separator")
            )

    return issues


def validate_definition(definition: PackageDefinition) -> PackageDefinition:
    """Return ``definition`` unchanged, or raise with every issue found."""
    issues = collect_issues(definition)
    if not issues:
        return definition
    if all(i.code == UNSUPPORTED for i in issues):
        raise UnsupportedSchemaFeature(issues)
    raise DefinitionInvalid(issues)


def validate_apkg(apkg_path: str | Path) -> tuple[bool, dict[str, Any]]:
    """Validate a built .apkg file.

    Rules:
    - File exists and is a valid zip
    - Contains collection.anki2 and media mapping file
    - Parse SQLite notes and extract referenced media filenames (e.g. <img src="...")
    - For each referenced filename, ensure it exists in media mapping values
      and that the corresponding numeric media entry exists in the zip.
    """
    apkg_path = Path(apkg_path)

    errors: list[str] = []
    warnings: list[str] = []
    referenced: set[str] = set()
    counts: dict[str, int] = {}

    if not apkg_path.exists() or not apkg_path.is_file():
        errors.append(f"apkg_missing: {apkg_path}")
        return False, {"errors": errors}

    try:
        with zipfile.ZipFile(apkg_path, "r") as z:
            names = set(z.namelist())
            if "collection.anki2" not in names:
                errors.append("apkg_missing_collection.anki2")
                return False, {"errors": errors}

            if "media" not in names:
                errors.append("apkg_missing_media_mapping")
                return False, {"errors": errors}

            try:
                media_map = json.loads(z.read("media").decode("utf-8"))
            except ValueError as e:
                errors.append(f"apkg_media_mapping_invalid_json: {e}")
                return False, {"errors": errors}

            if not isinstance(media_map, dict):
                errors.append("apkg_media_mapping_not_object")
                return False, {"errors": errors}

            name_to_indices: dict[str, list[str]] = {}
            for idx, fn in media_map.items():
                name_to_indices.setdefault(str(fn), []).append(str(idx))
            dupes = {fn: idxs for fn, idxs in name_to_indices.items() if len(idxs) > 1}
            if dupes:
                sample = list(dupes.items())[:10]
                warnings.append("apkg_media_mapping_duplicate_filenames: " + "; ".join(f"{fn}=>{i}" for fn, i in sample))

            with tempfile.TemporaryDirectory(prefix="apkg_check_") as tmp:
                db_path = Path(tmp) / "collection.anki2"
                db_path.write_bytes(z.read("collection.anki2"))
                conn = sqlite3.connect(db_path)
                try:
                    rows = conn.execute("SELECT flds FROM notes").fetchall()
                    counts["notes"] = len(rows)
                    counts["cards"] = conn.execute("SELECT count(*) FROM cards").fetchone()[0]
                    orphans = conn.execute(
                        "SELECT count(*) FROM cards WHERE nid NOT IN (SELECT id FROM notes)"
                    ).fetchone()[0]
                finally:
                    conn.close()
            if orphans:
                errors.append(f"apkg_orphan_cards: {orphans}")

            img_re = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']", flags=re.IGNORECASE)
            sound_re = re.compile(r"\[sound:([^\]]+)\]", flags=re.IGNORECASE)
            for (flds,) in rows:
                for m in list(img_re.finditer(flds)) + list(sound_re.finditer(flds)):
                    src = unescape(m.group(1)).strip()
                    if src:
                        referenced.add(Path(src).name)

            missing_in_mapping: list[str] = []
            missing_blob: list[str] = []
            for fn in sorted(referenced):
                idxs = name_to_indices.get(fn) or []
                if not idxs:
                    missing_in_mapping.append(fn)
                elif not any(idx in names for idx in idxs):
                    missing_blob.append(f"{fn} (indices={idxs})")

            if missing_in_mapping:
                errors.append("apkg_missing_media_mapping_filenames: " + ", ".join(missing_in_mapping[:50]))
            if missing_blob:
                errors.append("apkg_missing_media_blobs: " + ", ".join(missing_blob[:50]))
    except zipfile.BadZipFile:
        errors.append("apkg_invalid_zip")
    except sqlite3.Error as e:
        errors.append(f"apkg_sqlite_read_failed: {e}")

    return not errors, {
        "counts": counts,
        "referenced_filenames": sorted(referenced),
        "warnings": warnings,
        "errors": errors,
    }
