"""Data models for the notepad store."""

import time
import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

# parent_id value meaning "no parent" (top level)
ROOT_PARENT_ID = ""


def now_seconds() -> int:
    """Current wall-clock time as integer epoch seconds."""
    return int(time.time())


def generate_id() -> str:
    """Generate an opaque unique node identifier."""
    return str(uuid.uuid4())


class Node(BaseModel):
    """A file or folder in the tree.

    Timestamps are integer epoch seconds. ``parent_id`` is the empty string
    for top-level nodes; ``deleted_at`` is 0 while the node is live.
    """

    id: str = Field(default_factory=generate_id, description="Immutable identifier")
    title: str = Field(..., description="Name, unique among live siblings")
    content: str = Field(default="", description="Opaque markdown/JSON payload")
    is_folder: bool = Field(default=False, description="Only folders can be parents")
    parent_id: str = Field(default=ROOT_PARENT_ID, description="Parent node ID or ''")
    sort_order: int = Field(default=0, description="Larger renders first")
    is_deleted: bool = Field(default=False)
    deleted_at: int = Field(default=0)
    created_at: int = Field(default_factory=now_seconds)
    updated_at: int = Field(default_factory=now_seconds)

    model_config = {"validate_assignment": True, "extra": "forbid"}

    @field_validator("parent_id", mode="before")
    @classmethod
    def normalize_parent_id(cls, v: Optional[str]) -> str:
        """Treat NULL parents (legacy rows) as the root sentinel."""
        return v or ROOT_PARENT_ID

    @property
    def is_root_level(self) -> bool:
        return self.parent_id == ROOT_PARENT_ID


class NodeUpdate(BaseModel):
    """Partial update for a node; fields left as None are preserved."""

    title: Optional[str] = None
    content: Optional[str] = None
    parent_id: Optional[str] = None
    sort_order: Optional[int] = None
    is_deleted: Optional[bool] = None

    model_config = {"extra": "forbid"}

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        """Validate that a supplied title is not blank."""
        if v is not None and not v.strip():
            raise ValueError("Title cannot be empty")
        return v

    @property
    def touches_placement(self) -> bool:
        """True when the (parent_id, title) pair may change."""
        return self.title is not None or self.parent_id is not None


class Settings(BaseModel):
    """The singleton application settings record."""

    theme: str = Field(default="light")
    editor_opts: Dict[str, Any] = Field(default_factory=dict)
    sync_enabled: bool = Field(default=False)
    sync_endpoint: str = Field(default="")


class SettingsUpdate(BaseModel):
    """Partial settings update; None leaves the stored value untouched."""

    theme: Optional[str] = None
    editor_opts: Optional[Dict[str, Any]] = None
    sync_enabled: Optional[bool] = None
    sync_endpoint: Optional[str] = None

    model_config = {"extra": "forbid"}
