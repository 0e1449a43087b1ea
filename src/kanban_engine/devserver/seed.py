"""Demo data for the development server."""

from __future__ import annotations

from typing import Any

from .backend import MemoryBackend

DEMO_PROJECT_ID = "demo"
DEMO_OWNER_ID = "user-owner"

_DEMO_MEMBERS = (
    ("user-owner", "Olivia Owner", "owner"),
    ("user-admin", "Adrian Admin", "admin"),
    ("user-member", "Mika Member", "member"),
    ("user-viewer", "Val Viewer", "viewer"),
)

_DEMO_TASKS: tuple[tuple[str, dict[str, Any]], ...] = (
    ("todo", {"title": "Write onboarding guide", "priority": "medium", "tags": ["docs"]}),
    ("todo", {"title": "Fix login redirect", "priority": "urgent", "tags": ["bug"]}),
    ("todo", {"title": "Plan Q3 roadmap", "priority": "low"}),
    ("in_progress", {"title": "Realtime board updates", "priority": "high", "tags": ["frontend"]}),
    ("review", {"title": "Drag and drop on touch", "priority": "high", "color": "#3B82F6"}),
    ("done", {"title": "Project member roles", "priority": "medium"}),
)


def seed_demo(backend: MemoryBackend, project_id: str = DEMO_PROJECT_ID) -> str:
    """Create the demo project (one member per role, a handful of tasks)."""
    for user_id, name, _ in _DEMO_MEMBERS:
        backend.add_user(user_id, name)
    backend.create_project("Demo board", DEMO_OWNER_ID, project_id=project_id, description="Seeded by kanban-engine serve")
    for user_id, _, role in _DEMO_MEMBERS[1:]:
        backend.add_member(project_id, user_id, role)
    for stage_id, fields in _DEMO_TASKS:
        backend.create_task(DEMO_OWNER_ID, project_id, stage_id, fields)
    return project_id
