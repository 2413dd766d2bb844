from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogFormat = Literal["json", "console"]
SeverityName = Literal["LOW", "MEDIUM", "HIGH", "CRITICAL"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CICD_",
        env_file=".env",
        extra="ignore",
    )

    # deployment
    registry_host: str = Field(default="ghcr.io")
    image_repository: str = Field(default="rust-todo")
    # registry namespace; in GitHub Actions this is the repository owner
    image_owner: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "image_owner", "CICD_IMAGE_OWNER", "GITHUB_REPOSITORY_OWNER"
        ),
    )
    values_file: Path = Field(default=Path("helm/rust-todo/values.yaml"))
    tag_field: str = Field(default="tag")
    tracked_branch: str = Field(default="main")

    # tags
    fixed_label: str = Field(default="latest")
    short_sha_length: int = Field(default=7, ge=4, le=40)

    # execution
    workspace: Path = Field(default=Path("."))
    run_root: Path = Field(default=Path("_runs"))
    workers: int = Field(default=4, ge=1)
    artifact_retention_hours: int = Field(default=24, ge=1)
    keep_artifacts: bool = Field(default=False)
    stage_retries: dict[str, int] = Field(default_factory=dict)

    # toolchain
    lint_commands: list[list[str]] = Field(
        default_factory=lambda: [
            ["cargo", "fmt", "--check"],
            ["cargo", "clippy", "--", "-D", "warnings"],
        ]
    )
    build_command: list[str] = Field(
        default_factory=lambda: ["cargo", "build", "--release"]
    )
    test_command: list[str] = Field(default_factory=lambda: ["cargo", "test"])
    binary_path: Path = Field(default=Path("target/release/rust-todo"))
    command_timeout_s: float | None = Field(default=None)

    # registry / vcs
    registry_username: str | None = Field(default=None)
    registry_password: SecretStr | None = Field(default=None)
    git_push: bool = Field(default=True)
    git_author_name: str = Field(default="github-actions[bot]")
    git_author_email: str = Field(
        default="github-actions[bot]@users.noreply.github.com"
    )

    # gate
    block_severity: SeverityName = Field(default="HIGH")
    ignore_unfixed: bool = Field(default=True)

    log_level: str = Field(default="INFO")
    log_format: LogFormat = Field(default="console")

    @field_validator("stage_retries")
    @classmethod
    def _positive_attempts(cls, v: dict[str, int]) -> dict[str, int]:
        bad = sorted(k for k, n in v.items() if n < 1)
        if bad:
            raise ValueError(f"stage_retries must be >= 1 attempt: {bad}")
        return v

    @field_validator("image_owner")
    @classmethod
    def _lowercase_owner(cls, v: str | None) -> str | None:
        # image references must be lowercase
        if v is None:
            return None
        return v.strip().lower() or None

    @property
    def image_name(self) -> str:
        if self.image_owner:
            return f"{self.registry_host}/{self.image_owner}/{self.image_repository}"
        return f"{self.registry_host}/{self.image_repository}"


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    return Settings()
