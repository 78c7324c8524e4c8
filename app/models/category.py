"""
Category model (read-only reference from the catalog tree)
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.product import utc_now


class Category(BaseModel):
    """Category document as stored by the catalog tree owner"""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    name: str
    slug: str
    level: int = 0
    is_active: bool = Field(default=True, alias="isActive")
    sort_order: int = Field(default=0, alias="sortOrder")
    parent_id: Optional[str] = Field(None, alias="parentId")
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
