from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

import structlog

from .errors import StageExecutionError, TransientError

log = structlog.get_logger(__name__)

_TAIL_LINES = 20


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Normalized subprocess result."""

    command: tuple[str, ...]
    cwd: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def output_tail(self, lines: int = _TAIL_LINES) -> str:
        text = (self.stderr or self.stdout or "").strip()
        return "\n".join(text.splitlines()[-lines:])


def run_command(
    command: Sequence[str],
    *,
    cwd: Path,
    env: Mapping[str, str] | None = None,
    input_text: str | None = None,
    timeout_s: float | None = None,
    check: bool = True,
) -> CommandResult:
    """
    Run an external tool and capture its output.

    With check=True a non-zero exit raises StageExecutionError carrying the
    tail of the tool's output. A timeout raises TransientError.
    """
    argv = tuple(str(c) for c in command)
    run_env = None
    if env:
        run_env = dict(os.environ)
        run_env.update(env)

    log.debug("command.start", command=" ".join(argv), cwd=str(cwd))
    try:
        completed = subprocess.run(
            argv,
            cwd=str(cwd),
            env=run_env,
            text=True,
            capture_output=True,
            input=input_text,
            timeout=timeout_s,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise TransientError(f"{argv[0]} timed out after {timeout_s}s") from e
    except FileNotFoundError as e:
        raise StageExecutionError(
            f"{argv[0]} is not installed or not on PATH", command=argv
        ) from e

    result = CommandResult(
        command=argv,
        cwd=str(cwd),
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
    )
    log.debug("command.finish", command=argv[0], returncode=result.returncode)

    if check and not result.ok:
        raise StageExecutionError(
            f"command failed ({result.returncode}): {' '.join(argv)}",
            command=argv,
            returncode=result.returncode,
            output_tail=result.output_tail(),
        )
    return result
