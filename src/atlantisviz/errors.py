"""
Error types raised by the aggregation pipeline.

Structural problems (missing columns, unknown species) abort a run before any
figure is built. Data gaps (no volume for a biomass group) only degrade the
output and are reported as warnings.
"""

from __future__ import annotations
from typing import Iterable, List


class SchemaError(ValueError):
    """A required input table is missing one or more expected columns."""

    def __init__(self, message: str, missing: Iterable[str] = ()):
        super().__init__(message)
        self.missing: List[str] = list(missing)


class SelectionError(ValueError):
    """Requested species (or other keys) are not present in the data."""

    def __init__(self, message: str, missing: Iterable[str] = ()):
        super().__init__(message)
        self.missing: List[str] = list(missing)


class JoinGapWarning(UserWarning):
    """Biomass rows without a usable volume; their density is left as NaN."""
