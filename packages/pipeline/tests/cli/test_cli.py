from __future__ import annotations

import pytest

from cicd_pipeline import cli
from cicd_pipeline.core import load_settings


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("GITHUB_REPOSITORY_OWNER", raising=False)
    monkeypatch.delenv("CICD_IMAGE_OWNER", raising=False)
    load_settings.cache_clear()
    yield
    load_settings.cache_clear()


def test_graph_command(capsys) -> None:
    assert cli.main(["graph"]) == 0
    out = capsys.readouterr().out
    for name in ("lint", "containerize", "record"):
        assert name in out


def test_tags_command(capsys) -> None:
    rc = cli.main(["tags", "--event", "pull_request", "--pr", "42", "--sha", "9f8e7d6c5b4a"])
    assert rc == 0
    out = capsys.readouterr().out
    assert "ghcr.io/rust-todo:9f8e7d6" in out
    assert "ghcr.io/rust-todo:pr-42" in out


def test_untracked_branch_is_rejected(capsys) -> None:
    rc = cli.main(["tags", "--event", "push", "--branch", "feature/x", "--sha", "abc1234"])
    assert rc == cli.EXIT_USAGE
    assert "only 'main' is tracked" in capsys.readouterr().out


def test_incomplete_trigger_is_rejected() -> None:
    assert cli.main(["run", "--event", "pull_request", "--sha", "abc1234"]) == cli.EXIT_USAGE
    assert cli.main(["run", "--event", "push"]) == cli.EXIT_USAGE


def test_from_env(monkeypatch, capsys) -> None:
    monkeypatch.setenv("GITHUB_EVENT_NAME", "push")
    monkeypatch.setenv("GITHUB_REF_NAME", "main")
    monkeypatch.setenv("GITHUB_SHA", "0123456789abcdef")
    assert cli.main(["tags", "--from-env"]) == 0
    assert "ghcr.io/rust-todo:0123456" in capsys.readouterr().out


def test_tags_include_repository_owner(monkeypatch, capsys) -> None:
    monkeypatch.setenv("GITHUB_REPOSITORY_OWNER", "Acme")
    assert cli.main(["tags", "--event", "push", "--sha", "0123456789abcdef"]) == 0
    assert "ghcr.io/acme/rust-todo:0123456" in capsys.readouterr().out
