from typing import Literal

from pydantic import BaseModel, Field, field_validator

SourceKind = Literal["greenhouse", "lever", "workday", "taleo", "icims", "rss", "adzuna", "themuse"]
ClassifierStrategy = Literal["heuristic", "llm"]


class SourceTarget(BaseModel):
    name: str
    aliases: list[str] = Field(min_length=1)
    location: str | None = None
    options: dict[str, str] = Field(default_factory=dict)

    @field_validator("aliases")
    @classmethod
    def _strip_aliases(cls, value: list[str]) -> list[str]:
        stripped = [alias.strip() for alias in value if alias.strip()]
        if not stripped:
            raise ValueError("at least one non-empty alias is required")
        return stripped


class SourceConfig(BaseModel):
    name: str
    kind: SourceKind
    label: str
    classifier: ClassifierStrategy = "llm"
    max_pages: int = Field(default=5, ge=1)
    page_size: int = Field(default=50, ge=1, le=500)
    options: dict[str, str] = Field(default_factory=dict)
    targets: list[SourceTarget] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        return value.strip().lower()


class SourceCatalog(BaseModel):
    sources: list[SourceConfig]

    @field_validator("sources")
    @classmethod
    def _unique_names(cls, value: list[SourceConfig]) -> list[SourceConfig]:
        seen: set[str] = set()
        for source in value:
            if source.name in seen:
                raise ValueError(f"duplicate source name: {source.name}")
            seen.add(source.name)
        return value
