"""Pytest configuration for actionci tests."""

import threading
from pathlib import Path

import pytest

from actionci.executor import ProcessResult
from actionci.ui.console import set_console


class FakeRunner:
    """
    Stands in for `run_process`: records every command and returns scripted
    exit codes instead of spawning processes.

    Args:
        fail: command line (as displayed) -> exit code
        missing: commands whose executable "does not exist"
    """

    def __init__(self, fail=None, missing=()):
        self.fail = dict(fail or {})
        self.missing = set(missing)
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, cmd, cwd, *, env=None, timeout=None, cancel=None):
        shown = cmd if isinstance(cmd, str) else " ".join(cmd)
        with self._lock:
            self.calls.append((shown, Path(cwd)))
        if shown in self.missing:
            raise FileNotFoundError(shown)
        return ProcessResult(exit_code=self.fail.get(shown, 0), output=f"ran {shown}\n")

    def commands(self):
        return [c for c, _ in self.calls]


@pytest.fixture(autouse=True)
def reset_console():
    """Each test starts from a fresh default console."""
    set_console(None)
    yield
    set_console(None)


@pytest.fixture
def make_runner():
    return FakeRunner


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A workspace with the `symex` crate directory the preset pipeline runs in."""
    (tmp_path / "symex").mkdir()
    return tmp_path
