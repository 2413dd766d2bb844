from __future__ import annotations

from pathlib import Path

from cicd_pipeline.core import Settings, StageExecutionError, run_command


class CargoToolchain:
    """Static analysis, release build and unit tests through cargo."""

    def __init__(self, settings: Settings) -> None:
        self.lint_commands = [list(c) for c in settings.lint_commands]
        self.build_command = list(settings.build_command)
        self.test_command = list(settings.test_command)
        self.binary_path = Path(settings.binary_path)
        self.timeout_s = settings.command_timeout_s

    def lint(self, workspace: Path) -> None:
        for cmd in self.lint_commands:
            run_command(cmd, cwd=workspace, timeout_s=self.timeout_s)

    def build(self, workspace: Path) -> Path:
        run_command(self.build_command, cwd=workspace, timeout_s=self.timeout_s)
        binary = self.binary_path
        if not binary.is_absolute():
            binary = Path(workspace) / binary
        if not binary.is_file():
            raise StageExecutionError(f"build finished but {binary} does not exist")
        return binary

    def test(self, workspace: Path) -> None:
        run_command(self.test_command, cwd=workspace, timeout_s=self.timeout_s)
