"""Shop schemas. A shop mirrors one identity-provider organization."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..roles import Role


class ShopCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Shop display name")
    slug: str = Field(
        ...,
        min_length=2,
        max_length=50,
        pattern=r"^[a-z0-9][a-z0-9-]*[a-z0-9]$",
        description="URL-safe shop identifier",
    )


class ShopResponse(BaseModel):
    id: str
    name: str
    slug: str
    created_at: datetime
    updated_at: datetime
    role: Optional[Role] = None  # the requesting user's role in this shop

    model_config = {"from_attributes": True}
