"""
Master Configuration Model

The single shared settings document the administrator edits at runtime:
which categories and family members are valid on a submission, and the
minimum amount a deposit must reach.

DESIGN DECISION: `categories` and `members` are ordered sets. They are kept
as tuples so the UI can show a stable order (the first entry is the form
default), but every constructor and every add/remove goes through
`_unique`, so duplicates can never appear.
"""

from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from cashbook.config.settings import MasterDefaultsSettings


class MasterSetField(str, Enum):
    """Set-valued fields of the master configuration."""
    CATEGORIES = "categories"
    MEMBERS = "members"


class MasterScalarField(str, Enum):
    """Scalar fields of the master configuration."""
    MIN_TRANSFER = "min_transfer"


def _unique(values: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for value in values:
        value = str(value).strip()
        if value:
            seen.setdefault(value, None)
    return tuple(seen)


class MasterConfig(BaseModel):
    """Shared validation settings, stored as one document."""
    model_config = ConfigDict(frozen=True)

    categories: tuple[str, ...] = Field(default_factory=tuple)
    members: tuple[str, ...] = Field(default_factory=tuple)
    min_transfer: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator('categories', 'members', mode='before')
    @classmethod
    def dedupe(cls, v: Iterable[str]) -> tuple[str, ...]:
        if isinstance(v, str):
            v = [v]
        return _unique(v or ())

    @classmethod
    def defaults(cls, settings: "MasterDefaultsSettings") -> "MasterConfig":
        """The document created when the store has none yet."""
        return cls(
            categories=settings.categories_list,
            members=settings.members_list,
            min_transfer=settings.default_min_transfer,
        )

    def values(self, field: MasterSetField) -> tuple[str, ...]:
        return getattr(self, MasterSetField(field).value)

    def contains(self, field: MasterSetField, value: str) -> bool:
        return value.strip() in self.values(field)

    def with_added(self, field: MasterSetField, value: str) -> "MasterConfig":
        """Copy with `value` appended; no-op if already present."""
        field = MasterSetField(field)
        return self.model_copy(
            update={field.value: _unique((*self.values(field), value))}
        )

    def with_removed(self, field: MasterSetField, value: str) -> "MasterConfig":
        """Copy without `value`; no-op if absent."""
        field = MasterSetField(field)
        value = value.strip()
        return self.model_copy(
            update={field.value: tuple(v for v in self.values(field) if v != value)}
        )

    def with_min_transfer(self, amount: Decimal) -> "MasterConfig":
        return self.model_copy(update={"min_transfer": Decimal(amount)})

    def to_document(self) -> dict:
        """Plain representation for storage."""
        return {
            "categories": list(self.categories),
            "members": list(self.members),
            "min_transfer": str(self.min_transfer),
        }
