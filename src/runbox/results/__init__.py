"""Results module - Storage of run results."""

from __future__ import annotations

from runbox.results.storage import ResultsStorage

__all__ = ["ResultsStorage"]
