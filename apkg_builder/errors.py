from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


class BuildError(Exception):
    """Base class for every failure raised while building a package."""


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    subject: str  # e.g. "note[3]", "model 'Basic'", "deck 'Spanish'"
    message: str

    def __str__(self) -> str:
        return f"{self.subject}: {self.message}"


class DefinitionInvalid(BuildError):
    def __init__(self, issues: list[ValidationIssue]):
        self.issues = list(issues)
        lines = "\n".join(f"- {i}" for i in self.issues[:20])
        more = "" if len(self.issues) <= 20 else f"\n...and {len(self.issues) - 20} more"
        super().__init__(f"definition invalid ({len(self.issues)} issue(s)):\n{lines}{more}")


class UnsupportedSchemaFeature(DefinitionInvalid):
    """Templates reference something the package format cannot carry (e.g. an undeclared field)."""


class MediaMissing(BuildError):
    def __init__(self, path: str | Path, filename: str | None = None):
        self.path = Path(path)
        self.filename = filename
        label = f" ({filename})" if filename else ""
        super().__init__(f"media missing: {self.path}{label}")


@dataclass(frozen=True)
class Collision:
    kind: str  # model | deck | note | card | guid
    value: int | str
    owners: tuple[str, ...]

    def __str__(self) -> str:
        return f"{self.kind} id {self.value} shared by {', '.join(self.owners)}"


class IdCollision(BuildError):
    def __init__(self, collisions: list[Collision]):
        self.collisions = list(collisions)
        lines = "\n".join(f"- {c}" for c in self.collisions[:20])
        super().__init__(f"id collision ({len(self.collisions)}):\n{lines}")


class IoFailure(BuildError):
    def __init__(self, path: str | Path, cause: BaseException):
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"io failure at {self.path}: {cause}")
