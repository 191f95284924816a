from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterator

from .errors import DefinitionInvalid, ValidationIssue
from .utils import load_json

DECK_SEPARATOR = "::"


class ModelKind(str, Enum):
    STANDARD = "standard"
    CLOZE = "cloze"


@dataclass(frozen=True)
class TemplateDefinition:
    name: str
    front: str  # qfmt
    back: str  # afmt


@dataclass(frozen=True)
class ModelDefinition:
    name: str
    fields: tuple[str, ...]
    templates: tuple[TemplateDefinition, ...]
    sort_field: str | None = None
    css: str | None = None
    markdown_fields: tuple[str, ...] = ()
    kind: ModelKind = ModelKind.STANDARD
    id: int | None = None

    @property
    def is_cloze(self) -> bool:
        return self.kind is ModelKind.CLOZE

    @property
    def sort_field_index(self) -> int:
        # Falls back to the first field; an unknown sort field is rejected by the validator.
        if self.sort_field and self.sort_field in self.fields:
            return self.fields.index(self.sort_field)
        return 0


@dataclass(frozen=True)
class DeckDefinition:
    name: str
    description: str | None = None
    id: int | None = None

    @property
    def path(self) -> list[str]:
        return self.name.split(DECK_SEPARATOR)


@dataclass(frozen=True)
class NoteDefinition:
    deck: str
    model: str
    fields: dict[str, str]
    tags: tuple[str, ...] = ()
    id: int | None = None
    guid: str | None = None

    def ordered_values(self, model: ModelDefinition) -> list[str]:
        """Field values in the model's declared order."""
        return [self.fields[name] for name in model.fields]

    def tags_string(self) -> str:
        if not self.tags:
            return ""
        return " " + " ".join(self.tags) + " "


@dataclass(frozen=True)
class MediaReference:
    filename: str  # name referenced from field markup (<img src="...">, [sound:...])
    path: str  # source path; relative paths resolve against the media dir


@dataclass(frozen=True)
class PackageDefinition:
    name: str
    version: str = "1.0.0"
    author: str | None = None
    description: str | None = None
    models: tuple[ModelDefinition, ...] = ()
    decks: tuple[DeckDefinition, ...] = ()
    notes: tuple[NoteDefinition, ...] = ()
    media: tuple[MediaReference, ...] = field(default_factory=tuple)

    def get_model(self, name: str) -> ModelDefinition | None:
        for m in self.models:
            if m.name == name:
                return m
        return None

    def get_deck(self, name: str) -> DeckDefinition | None:
        for d in self.decks:
            if d.name == name:
                return d
        return None

    def notes_for_deck(self, name: str) -> Iterator[NoteDefinition]:
        return (n for n in self.notes if n.deck == name)

    @classmethod
    def from_dict(cls, data: Any) -> PackageDefinition:
        """Build a typed definition from an already-parsed mapping.

        Only shape is checked here (required keys, container types). Referential
        integrity is the validator's job.
        """
        issues: list[ValidationIssue] = []
        if not isinstance(data, dict):
            raise DefinitionInvalid([ValidationIssue("malformed", "definition", "must be an object")])

        pkg = data.get("package", {})
        if not isinstance(pkg, dict) or not str(pkg.get("name") or "").strip():
            issues.append(ValidationIssue("malformed", "package", "missing package.name"))
            pkg = pkg if isinstance(pkg, dict) else {}

        models = [_model_from_dict(i, m, issues) for i, m in enumerate(_list(data, "models", issues))]
        decks = [_deck_from_dict(i, d, issues) for i, d in enumerate(_list(data, "decks", issues))]
        notes = [_note_from_dict(i, n, issues) for i, n in enumerate(_list(data, "notes", issues))]
        media = [_media_from_dict(i, m, issues) for i, m in enumerate(_list(data, "media", issues))]

        if issues:
            raise DefinitionInvalid(issues)

        return cls(
            name=str(pkg["name"]),
            version=str(pkg.get("version") or "1.0.0"),
            author=_opt_str(pkg.get("author")),
            description=_opt_str(pkg.get("description")),
            models=tuple(m for m in models if m is not None),
            decks=tuple(d for d in decks if d is not None),
            notes=tuple(n for n in notes if n is not None),
            media=tuple(m for m in media if m is not None),
        )


def load_definition(path: str | Path) -> PackageDefinition:
    return PackageDefinition.from_dict(load_json(path))


def _opt_str(v: Any) -> str | None:
    return None if v is None else str(v)


def _opt_int(v: Any, subject: str, key: str, issues: list[ValidationIssue]) -> int | None:
    if v is None:
        return None
    if type(v) is not int:
        issues.append(ValidationIssue("malformed", subject, f"{key} must be an integer"))
        return None
    return v


def _list(data: dict[str, Any], key: str, issues: list[ValidationIssue]) -> list[Any]:
    v = data.get(key, [])
    if not isinstance(v, list):
        issues.append(ValidationIssue("malformed", key, "must be a list"))
        return []
    return v


def _str_list(v: Any, subject: str, key: str, issues: list[ValidationIssue]) -> tuple[str, ...]:
    if v is None:
        return ()
    if not isinstance(v, list) or not all(isinstance(s, str) for s in v):
        issues.append(ValidationIssue("malformed", subject, f"{key} must be a list of strings"))
        return ()
    return tuple(v)


def _require(obj: dict[str, Any], keys: tuple[str, ...], subject: str, issues: list[ValidationIssue]) -> bool:
    ok = True
    for k in keys:
        if k not in obj:
            issues.append(ValidationIssue("malformed", subject, f"missing key {k}"))
            ok = False
    return ok


def _model_from_dict(idx: int, m: Any, issues: list[ValidationIssue]) -> ModelDefinition | None:
    subject = f"models[{idx}]"
    if not isinstance(m, dict):
        issues.append(ValidationIssue("malformed", subject, "not an object"))
        return None
    if not _require(m, ("name", "fields"), subject, issues):
        return None

    templates: list[TemplateDefinition] = []
    for t_idx, t in enumerate(m.get("templates") or []):
        t_subject = f"{subject}.templates[{t_idx}]"
        if not isinstance(t, dict):
            issues.append(ValidationIssue("malformed", t_subject, "not an object"))
            continue
        if not _require(t, ("name", "front", "back"), t_subject, issues):
            continue
        templates.append(TemplateDefinition(name=str(t["name"]), front=str(t["front"]), back=str(t["back"])))

    kind_raw = str(m.get("kind") or ModelKind.STANDARD.value).lower()
    try:
        kind = ModelKind(kind_raw)
    except ValueError:
        issues.append(ValidationIssue("malformed", subject, f"unknown kind {kind_raw!r}"))
        kind = ModelKind.STANDARD

    return ModelDefinition(
        name=str(m["name"]),
        fields=_str_list(m.get("fields"), subject, "fields", issues),
        templates=tuple(templates),
        sort_field=_opt_str(m.get("sort_field")),
        css=_opt_str(m.get("css")),
        markdown_fields=_str_list(m.get("markdown_fields"), subject, "markdown_fields", issues),
        kind=kind,
        id=_opt_int(m.get("id"), subject, "id", issues),
    )


def _deck_from_dict(idx: int, d: Any, issues: list[ValidationIssue]) -> DeckDefinition | None:
    subject = f"decks[{idx}]"
    if not isinstance(d, dict):
        issues.append(ValidationIssue("malformed", subject, "not an object"))
        return None
    if not _require(d, ("name",), subject, issues):
        return None
    return DeckDefinition(
        name=str(d["name"]),
        description=_opt_str(d.get("description")),
        id=_opt_int(d.get("id"), subject, "id", issues),
    )


def _note_from_dict(idx: int, n: Any, issues: list[ValidationIssue]) -> NoteDefinition | None:
    subject = f"notes[{idx}]"
    if not isinstance(n, dict):
        issues.append(ValidationIssue("malformed", subject, "not an object"))
        return None
    if not _require(n, ("deck", "model", "fields"), subject, issues):
        return None
    fields = n.get("fields")
    if not isinstance(fields, dict):
        issues.append(ValidationIssue("malformed", subject, "fields must be an object"))
        return None
    return NoteDefinition(
        deck=str(n["deck"]),
        model=str(n["model"]),
        fields={str(k): "" if v is None else str(v) for k, v in fields.items()},
        tags=_str_list(n.get("tags"), subject, "tags", issues),
        id=_opt_int(n.get("id", n.get("note_id")), subject, "id", issues),
        guid=_opt_str(n.get("guid")),
    )


def _media_from_dict(idx: int, m: Any, issues: list[ValidationIssue]) -> MediaReference | None:
    subject = f"media[{idx}]"
    if not isinstance(m, dict):
        issues.append(ValidationIssue("malformed", subject, "not an object"))
        return None
    if "filename" not in m and "name" in m:
        m = {**m, "filename": m["name"]}
    if not _require(m, ("filename", "path"), subject, issues):
        return None
    return MediaReference(filename=str(m["filename"]), path=str(m["path"]))
