"""Tests for process execution and keyed locks."""

from __future__ import annotations

import sys
import threading
import time
from pathlib import Path

import pytest

from strata.storage.errors import StorageBackendError
from strata.storage.locks import KeyedLock
from strata.storage.process import CommandResult, ProcessExecutor, SubprocessExecutor


class TestCommandResult:
    """Tests for captured command results."""

    def test_ok(self) -> None:
        """Exit status 0 is success."""
        assert CommandResult(("git", "status"), 0).ok is True
        assert CommandResult(("git", "status"), 1).ok is False

    def test_output_text_combines_streams(self) -> None:
        """stdout and stderr are joined for error messages."""
        result = CommandResult(("git",), 1, b"out\n", b"err\n")

        assert result.output_text == "out\n\nerr"
        assert result.stdout_text == "out\n"

    def test_undecodable_output_is_replaced(self) -> None:
        """Binary output never raises while decoding."""
        assert CommandResult(("git",), 0, b"\xff").stdout_text == "\ufffd"


class TestSubprocessExecutor:
    """Tests for the subprocess-based executor."""

    def test_satisfies_protocol(self) -> None:
        """SubprocessExecutor implements ProcessExecutor."""
        assert isinstance(SubprocessExecutor(), ProcessExecutor)

    def test_captures_output_and_exit_code(self, tmp_path: Path) -> None:
        """stdout, stderr and the exit code are captured as bytes."""
        executor = SubprocessExecutor(timeout_seconds=30)
        script = "import sys; sys.stdout.write('hi'); sys.stderr.write('oops'); sys.exit(3)"

        result = executor.run([sys.executable, "-c", script], cwd=tmp_path)

        assert result.returncode == 3
        assert result.stdout == b"hi"
        assert result.stderr == b"oops"

    def test_runs_in_working_directory(self, tmp_path: Path) -> None:
        """Commands run in the given directory."""
        executor = SubprocessExecutor()

        result = executor.run(
            [sys.executable, "-c", "import os; print(os.getcwd())"], cwd=tmp_path
        )

        assert Path(result.stdout_text.strip()).resolve() == tmp_path.resolve()

    def test_passes_input(self, tmp_path: Path) -> None:
        """input_data is written to stdin."""
        executor = SubprocessExecutor()
        script = "import sys; sys.stdout.write(sys.stdin.read().upper())"

        result = executor.run([sys.executable, "-c", script], cwd=tmp_path, input_data=b"abc")

        assert result.stdout == b"ABC"

    def test_fixed_locale(self, tmp_path: Path) -> None:
        """Commands see a C locale so git output is stable."""
        executor = SubprocessExecutor(env={"STRATA_TEST_MARKER": "1"})
        script = "import os; print(os.environ['LC_ALL'], os.environ['STRATA_TEST_MARKER'])"

        result = executor.run([sys.executable, "-c", script], cwd=tmp_path)

        assert result.stdout_text.split() == ["C", "1"]

    def test_timeout_raises_backend_error(self, tmp_path: Path) -> None:
        """Commands exceeding the timeout are reported as backend errors."""
        executor = SubprocessExecutor(timeout_seconds=0.2)

        with pytest.raises(StorageBackendError) as exc_info:
            executor.run([sys.executable, "-c", "import time; time.sleep(5)"], cwd=tmp_path)

        assert "timed out" in exc_info.value.message

    def test_missing_binary_raises_backend_error(self, tmp_path: Path) -> None:
        """A missing executable is a backend error, not an OSError."""
        executor = SubprocessExecutor()

        with pytest.raises(StorageBackendError) as exc_info:
            executor.run(["strata-definitely-missing-binary"], cwd=tmp_path)

        assert isinstance(exc_info.value.cause, OSError)


class TestKeyedLock:
    """Tests for per-key locking."""

    def test_same_key_serializes(self) -> None:
        """Holders of the same key never overlap."""
        locks = KeyedLock()
        active = 0
        overlaps = 0
        guard = threading.Lock()

        def work() -> None:
            nonlocal active, overlaps
            with locks.hold("repo"):
                with guard:
                    active += 1
                    if active > 1:
                        overlaps += 1
                time.sleep(0.01)
                with guard:
                    active -= 1

        threads = [threading.Thread(target=work) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == 0

    def test_different_keys_do_not_block(self) -> None:
        """A held key does not block other keys."""
        locks = KeyedLock()
        acquired = threading.Event()

        def take_b() -> None:
            with locks.hold("b"):
                acquired.set()

        with locks.hold("a"):
            thread = threading.Thread(target=take_b)
            thread.start()
            thread.join(timeout=2)

        assert acquired.is_set()

    def test_reentrant(self) -> None:
        """The same thread may re-acquire a key."""
        locks = KeyedLock()

        with locks.hold("repo"):
            with locks.hold("repo"):
                pass

    def test_hold_many_deduplicates_and_counts(self) -> None:
        """hold_many accepts repeated keys and creates one lock per key."""
        locks = KeyedLock()

        with locks.hold_many("a", "b", "a"):
            with locks.hold("b"):
                pass

        assert len(locks) == 2
