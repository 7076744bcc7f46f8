"""
Pattern dataset schemas.

The same models back both the patterns API payload (camelCase) and the
cached copy (snake_case), so every aliased field also accepts its own name.
Datasets are frozen: a sync builds a new one instead of editing the old one.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class BotPattern(BaseModel):
    model_config = ConfigDict(frozen=True)

    pattern: str = Field(min_length=1)
    type: str = "unknown"
    category: str = "Unknown"
    subcategory: str = "Unclassified"
    company: str | None = None
    is_compliant: bool = False
    is_ai_model_trainer: bool = False
    intent: str = "unknown"
    url: str | None = None

    @field_validator("type", "category", "subcategory", "intent",
                     "is_compliant", "is_ai_model_trainer", mode="before")
    @classmethod
    def _null_is_default(cls, value, info: ValidationInfo):
        return cls.model_fields[info.field_name].default if value is None else value


class AiReferrer(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    company: str | None = None
    url: str | None = None
    patterns: tuple[str, ...] = ()
    description: str = ""

    @field_validator("patterns", "description", mode="before")
    @classmethod
    def _null_is_default(cls, value, info: ValidationInfo):
        return cls.model_fields[info.field_name].default if value is None else value


class PropertySettings(BaseModel):
    """Per-property allow/block rules pushed down from the dashboard."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    block_ai_model_trainers: bool = Field(default=False, alias="blockAiModelTrainers")
    custom_blocks: frozenset[str] = Field(default=frozenset(), alias="customBlocks")
    custom_allows: frozenset[str] = Field(default=frozenset(), alias="customAllows")

    @field_validator("block_ai_model_trainers", mode="before")
    @classmethod
    def _null_is_false(cls, value):
        return False if value is None else value

    @field_validator("custom_blocks", "custom_allows", mode="before")
    @classmethod
    def _null_is_empty(cls, value):
        return () if value is None else value


class PatternDataset(BaseModel):
    """Complete, versioned snapshot served to the detection engine."""

    model_config = ConfigDict(frozen=True)

    patterns: tuple[BotPattern, ...]
    ai_referrers: tuple[AiReferrer, ...] = ()
    settings: PropertySettings = PropertySettings()
    version: str = "1.0.0"
    synced_at: datetime | None = None  # None = compiled-in defaults
