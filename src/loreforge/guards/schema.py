"""Shape validation of drafts before they leave the creating stage."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import Field, ValidationError

from loreforge.models.artifacts import Draft, NonEmptyStr

if TYPE_CHECKING:
    from pydantic_core import ErrorDetails


class NpcDraft(Draft):
    name: NonEmptyStr


class ItemDraft(Draft):
    name: NonEmptyStr
    rarity: str | None = None
    requires_attunement: bool | None = None


class EncounterDraft(Draft):
    title: NonEmptyStr
    combatants: list[dict[str, Any]] = Field(default_factory=list)


class SceneDraft(Draft):
    title: NonEmptyStr


class AdventureDraft(Draft):
    title: NonEmptyStr


DRAFT_MODELS: dict[str, type[Draft]] = {
    "npc": NpcDraft,
    "item": ItemDraft,
    "encounter": EncounterDraft,
    "scene": SceneDraft,
    "adventure": AdventureDraft,
}


@dataclass
class ValidationErrorDetail:
    """One failed field.

    Attributes:
        field: Dotted path of the field.
        issue: What went wrong.
        error_type: Pydantic error code (``missing``, ``string_too_short`` ...).
    """

    field: str
    issue: str
    error_type: str | None = None

    def __str__(self) -> str:
        return f"{self.field}: {self.issue}"


class DraftValidationError(Exception):
    """Raised when a draft does not match the shape for its kind."""

    def __init__(self, kind: str, errors: list[ValidationErrorDetail]) -> None:
        self.kind = kind
        self.errors = errors
        listing = "\n  - ".join(str(e) for e in errors)
        super().__init__(f"Invalid {kind} draft:\n  - {listing}")


def _detail(error: ErrorDetails) -> ValidationErrorDetail:
    path = ".".join(str(part) for part in error["loc"]) or "<root>"
    return ValidationErrorDetail(field=path, issue=error["msg"], error_type=error["type"])


def validate_draft(kind: str, data: dict[str, Any]) -> Draft:
    """Validate ``data`` as a draft of ``kind``.

    Null values are treated as absent. Unknown kinds are validated against the
    common draft shape only.

    Raises:
        DraftValidationError: With one detail per failed field.
    """
    model = DRAFT_MODELS.get(kind, Draft)
    cleaned = {key: value for key, value in data.items() if value is not None}
    try:
        validated = model.model_validate(cleaned)
    except ValidationError as e:
        raise DraftValidationError(kind, [_detail(err) for err in e.errors()]) from e
    return Draft.model_validate(validated.model_dump())
