from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator

Function = Literal["S&T", "IBD", "AM", "PE", "Research", "PB", "Quant"]
Level = Literal["Analyst", "Associate", "VP", "Director", "MD", "Partner"]

FUNCTIONS: tuple[str, ...] = ("S&T", "IBD", "AM", "PE", "Research", "PB", "Quant")
LEVELS: tuple[str, ...] = ("Analyst", "Associate", "VP", "Director", "MD", "Partner")
DESCRIPTION_MAX_LENGTH = 1500


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CanonicalPosting(BaseModel):
    source_id: str
    title: str
    firm: str
    location: str | None = None
    description: str = ""
    apply_url: str = ""
    source: str
    posted_at: datetime = Field(default_factory=_utcnow)
    function: Function | None = None
    level: Level | None = None
    is_front_office: bool = False
    is_approved: bool = False

    @field_validator("title", "firm")
    @classmethod
    def _strip_text(cls, value: str) -> str:
        return " ".join(value.split())

    @field_validator("description")
    @classmethod
    def _bound_description(cls, value: str) -> str:
        return value[:DESCRIPTION_MAX_LENGTH]

    @field_validator("posted_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def accept(self, classification: Classification) -> CanonicalPosting:
        return self.model_copy(
            update={
                "function": classification.function,
                "level": classification.level,
                "is_front_office": True,
                "is_approved": True,
            }
        )


class Classification(BaseModel):
    is_front_office: bool
    function: Function | None = None
    level: Level | None = None

    @classmethod
    def rejected(cls) -> Classification:
        return cls(is_front_office=False)
