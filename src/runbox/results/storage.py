"""Run result storage utilities."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

from runbox.core.schemas import RunResult

logger = logging.getLogger(__name__)


class ResultsStorage:
    """Storage manager for run results.

    Each saved run gets its own timestamped directory holding a short
    ``result.json`` summary and a ``result_detailed.json`` with the captured
    logs.
    """

    def __init__(self, results_dir: Path) -> None:
        """Initialize storage with results directory."""
        self.results_dir = Path(results_dir).resolve()
        self.results_dir.mkdir(parents=True, exist_ok=True)

    def save(self, result: RunResult, run_name: str | None = None) -> Path:
        """Save a run result to files.

        Args:
            result: RunResult to persist
            run_name: Optional name for this run (typically the container name)

        Returns:
            Path to the results directory for this run
        """
        # Timestamp suffix prevents overwrites when a name is reused
        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S-%f")
        run_name = f"{run_name or 'run'}_{timestamp}"
        run_dir = self.results_dir / run_name
        run_dir.mkdir(parents=True, exist_ok=True)

        with open(run_dir / "result.json", "w", encoding="utf-8") as f:
            json.dump(result.to_summary_dict(), f, indent=2, default=str)
        with open(run_dir / "result_detailed.json", "w", encoding="utf-8") as f:
            json.dump(result.model_dump(mode="json"), f, separators=(",", ":"))

        logger.info(f"Saved result to {run_dir}")
        return run_dir

    def load(self, run_name: str | None = None) -> RunResult:
        """Load a run result.

        Args:
            run_name: Directory name of the run, or None for the latest

        Returns:
            The stored RunResult
        """
        if run_name is None:
            runs = sorted(
                (p for p in self.results_dir.iterdir() if p.is_dir()),
                key=lambda p: p.stat().st_mtime,
                reverse=True,
            )
            if not runs:
                raise FileNotFoundError("No runs found")
            run_dir = runs[0]
        else:
            run_dir = self.results_dir / run_name

        detailed_path = run_dir / "result_detailed.json"
        if not detailed_path.exists():
            raise FileNotFoundError(f"No result found in {run_dir}")
        with open(detailed_path, encoding="utf-8") as f:
            return RunResult.model_validate(json.load(f))
