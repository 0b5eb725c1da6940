"""Pydantic schemas for the harness."""

from callharness.schemas.session import User, CallConfig

__all__ = ["User", "CallConfig"]
