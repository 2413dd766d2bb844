from __future__ import annotations

import sys
from pathlib import Path

import pytest

from cicd_pipeline.core import (
    CyclicGraphError,
    DuplicateArtifactError,
    GraphDefinitionError,
    InternalError,
    MissingArtifactError,
    PipelineError,
    StageExecutionError,
    TransientError,
    format_duration_ms,
    run_command,
    stage_error_from_exc,
)


def test_run_command_captures_output(tmp_path: Path) -> None:
    res = run_command([sys.executable, "-c", "print('hello')"], cwd=tmp_path)
    assert res.ok
    assert res.stdout.strip() == "hello"
    assert res.command[0] == sys.executable


def test_run_command_nonzero_exit_raises_with_tail(tmp_path: Path) -> None:
    script = "import sys; print('\\n'.join(str(i) for i in range(50)), file=sys.stderr); sys.exit(3)"
    with pytest.raises(StageExecutionError) as ei:
        run_command([sys.executable, "-c", script], cwd=tmp_path)

    err = ei.value
    assert err.returncode == 3
    assert err.output_tail is not None
    assert err.output_tail.splitlines() == [str(i) for i in range(30, 50)]


def test_run_command_unchecked_returns_result(tmp_path: Path) -> None:
    res = run_command(
        [sys.executable, "-c", "import sys; sys.exit(1)"], cwd=tmp_path, check=False
    )
    assert not res.ok
    assert res.returncode == 1


def test_run_command_passes_stdin(tmp_path: Path) -> None:
    res = run_command(
        [sys.executable, "-c", "import sys; print(sys.stdin.read().upper())"],
        cwd=tmp_path,
        input_text="secret",
    )
    assert res.stdout.strip() == "SECRET"


def test_run_command_missing_tool(tmp_path: Path) -> None:
    with pytest.raises(StageExecutionError, match="not installed"):
        run_command(["definitely-not-a-real-tool-xyz"], cwd=tmp_path)


def test_run_command_timeout_is_transient(tmp_path: Path) -> None:
    with pytest.raises(TransientError):
        run_command(
            [sys.executable, "-c", "import time; time.sleep(5)"],
            cwd=tmp_path,
            timeout_s=0.2,
        )


def test_error_hierarchy() -> None:
    assert issubclass(CyclicGraphError, GraphDefinitionError)
    assert issubclass(DuplicateArtifactError, InternalError)
    assert issubclass(MissingArtifactError, InternalError)
    assert issubclass(InternalError, PipelineError)

    err = CyclicGraphError(["a", "b"])
    assert err.stages == ("a", "b")
    assert "a, b" in str(err)

    dup = DuplicateArtifactError("image", "second", "first")
    assert dup.key == "image" and dup.existing == "first"


def test_stage_error_from_exc() -> None:
    try:
        raise StageExecutionError("boom", returncode=2, output_tail="last line")
    except StageExecutionError as e:
        rec = stage_error_from_exc(e)

    assert rec.exc_type == "StageExecutionError"
    assert rec.message == "boom\nlast line"
    assert "StageExecutionError" in rec.traceback


def test_format_duration_ms() -> None:
    assert format_duration_ms(250) == "250 ms"
    assert format_duration_ms(1500) == "1.50 s"
