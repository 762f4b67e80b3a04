"""Metadata records returned by the Vault. They never carry secret values."""
from pydantic import BaseModel, Field


class SecretMeta(BaseModel):
    name: str
    tags: list[str] = Field(default_factory=list)
    created_at: str
    updated_at: str


class HistoryEntry(BaseModel):
    """An archived version of a secret (ciphertext stays in the store)."""

    name: str
    version: int = Field(ge=1)
    tags: list[str] = Field(default_factory=list)
    archived_at: str
