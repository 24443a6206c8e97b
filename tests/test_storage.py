"""Tests for result storage."""

import json
import os
from datetime import timedelta

import pytest

from runbox.core.schemas import RunResult, RunStatus
from runbox.results.storage import ResultsStorage


class TestResultsStorage:
    """Tests for ResultsStorage."""

    def test_save_and_load(self, tmp_path):
        storage = ResultsStorage(tmp_path / "results")
        result = RunResult(
            final_status=RunStatus.SUCCESS,
            exit_code=0,
            stdout="hello\n",
            execution_duration=timedelta(seconds=2),
        )

        run_dir = storage.save(result, "task")

        assert run_dir.name.startswith("task_")
        summary = json.loads((run_dir / "result.json").read_text())
        assert summary["final_status"] == "SUCCESS"
        assert summary["execution_duration_seconds"] == 2.0
        assert storage.load(run_dir.name) == result

    def test_load_latest(self, tmp_path):
        storage = ResultsStorage(tmp_path)
        old_dir = storage.save(RunResult(final_status=RunStatus.FAILED), "old")
        new_dir = storage.save(RunResult(final_status=RunStatus.TIMEOUT), "new")
        os.utime(old_dir, (1, 1))

        assert new_dir != old_dir
        assert storage.load().final_status == RunStatus.TIMEOUT

    def test_load_empty(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ResultsStorage(tmp_path).load()

    def test_load_missing_run(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ResultsStorage(tmp_path).load("nope")
