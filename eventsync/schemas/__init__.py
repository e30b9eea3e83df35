"""Pydantic schemas for eventsync."""

from .event import AdditionalData, CanonicalEvent, ensure_utc

__all__ = ["AdditionalData", "CanonicalEvent", "ensure_utc"]
