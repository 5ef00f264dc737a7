"""Structured logging helpers (PHI-safe)."""

import logging
from typing import Any
from uuid import UUID


def build_log_context(
    *,
    user_id: UUID | str | None = None,
    hospital_id: UUID | str | None = None,
    work_order_id: UUID | str | None = None,
    action: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PHI-safe log context dict (ids and action names only, no notes)."""
    context: dict[str, Any] = {}
    if user_id:
        context["user_id"] = str(user_id)
    if hospital_id:
        context["hospital_id"] = str(hospital_id)
    if work_order_id:
        context["work_order_id"] = str(work_order_id)
    if action:
        context["action"] = action
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once at startup."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
