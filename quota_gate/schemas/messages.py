"""Pydantic schemas for message splitting."""

from __future__ import annotations

from pydantic import BaseModel, Field


class SplitRequest(BaseModel):
    text: str = Field(..., description="Generated answer to split.")
    max_length: int | None = Field(
        None,
        ge=1,
        description="Maximum chunk length; defaults to the platform message limit.",
    )
    with_indicator: bool = Field(
        True,
        description="Append ' (i/total)' to each chunk when more than one is produced.",
    )


class SplitResponse(BaseModel):
    chunks: list[str] = Field(..., description="Chunks in delivery order.")
    count: int = Field(..., ge=0)
