"""Shared pydantic schemas."""

from ascent.shared.schemas.base import BaseSchema

__all__ = ["BaseSchema"]
