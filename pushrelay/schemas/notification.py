"""Notification-related Pydantic schemas."""

from pydantic import BaseModel, Field


class NormalizedMessage(BaseModel):
    """Provider-agnostic message handed to the push provider."""

    title: str
    body: str
    data: dict[str, str] = Field(default_factory=dict)
