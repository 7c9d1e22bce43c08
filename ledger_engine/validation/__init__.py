"""Validation package."""

from ledger_engine.validation.validator import (
    LinkValidator,
    coerce_links,
    raise_for_errors,
)

__all__ = ["LinkValidator", "coerce_links", "raise_for_errors"]
