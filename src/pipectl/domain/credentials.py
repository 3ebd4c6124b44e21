"""API credential entries stored in the pipeline's YAML config."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

NIL_UUID = UUID(int=0)

_VISIBLE_KEY_CHARS = 6


def mask_key(key: str) -> str:
    """Return a log-safe rendering of a credential key."""
    if len(key) <= _VISIBLE_KEY_CHARS:
        return "…"
    return f"{key[:_VISIBLE_KEY_CHARS]}…"


class CredentialEntry(BaseModel):
    """An API key entry for the ingestion API's key table.

    The key is sensitive: use :attr:`masked_key` anywhere it could be
    logged or rendered.
    """

    model_config = {"frozen": True}

    key: str = Field(min_length=1, repr=False)
    tenant_id: UUID = NIL_UUID
    user_id: UUID = NIL_UUID
    display_name: str = "Working API Key"
    active: bool = True

    @property
    def masked_key(self) -> str:
        return mask_key(self.key)

    def as_config_value(self) -> dict[str, Any]:
        """Mapping stored under the key in the config's key table."""
        return {
            "tenant_id": str(self.tenant_id),
            "user_id": str(self.user_id),
            "name": self.display_name,
            "is_active": self.active,
        }
