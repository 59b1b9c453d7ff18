"""Exceptions raised by the analytics services."""

from __future__ import annotations


class ValidationError(ValueError):
    """Raised when a request carries missing or malformed input."""


class DivisionGuardError(ArithmeticError):
    """Raised when an undefined ratio is used as if it had a value."""
