"""Pydantic models for all CRDs."""

# Import all models to ensure they're registered
from . import webapp

__all__ = ["webapp"]
