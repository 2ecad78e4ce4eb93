from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TagIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Tag name must not be blank")
        return stripped


class TransactionIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: date
    # Signed cents: negative for expenses, positive for income.
    amount_cents: int
    description: str = Field(default="", max_length=200)
    tag_id: Optional[int] = None
    import_id: Optional[str] = Field(default=None, max_length=64)


class ExcludedTagsIn(BaseModel):
    excluded_tag_ids: list[int] = Field(default_factory=list)


class TransactionTagIn(BaseModel):
    tag_id: Optional[int] = None
