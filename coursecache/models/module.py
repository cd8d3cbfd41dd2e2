from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

ContentType = Literal["text", "pdf", "video", "quiz", "assignment", "other"]


@dataclass(frozen=True, slots=True)
class ContentItem:
    id: int
    module_id: int
    title: str
    content_type: ContentType = "text"
    content: str | None = None
    content_url: str | None = None
    description: str | None = None
    duration: int | None = None  # minutes
    created_by: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    due_date: str | None = None
    points: int | None = None
    assignment_id: int | None = None


@dataclass(frozen=True, slots=True)
class Module:
    id: int
    course_id: int
    title: str
    order: int = 1
    description: str | None = None
    subtitle: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    can_manage: bool = False
    locked: bool = False
    progress: float | None = None
    # Derived from the content-by-module bucket once it has been loaded.
    content_count: int | None = None
    duration: int | None = None
    content_items: tuple[ContentItem, ...] | None = None
