from __future__ import annotations

from cicd_pipeline.core import new_run_id, provenance_from_env


def test_provenance_from_ci_env() -> None:
    prov = provenance_from_env(
        run_id="r1",
        started_at_utc="2026-01-01T00:00:00Z",
        env={
            "GITHUB_RUN_ID": "991",
            "GITHUB_RUN_ATTEMPT": "2",
            "GITHUB_WORKFLOW": "CI/CD",
            "GITHUB_REPOSITORY": "acme/rust-todo",
        },
    )
    assert prov.ci_run_id == "991"
    assert prov.ci_run_attempt == "2"
    assert prov.ci_workflow == "CI/CD"
    assert prov.ci_actor is None
    assert prov.ci_repository == "acme/rust-todo"


def test_local_run_has_no_ci_fields() -> None:
    prov = provenance_from_env(run_id="r1", started_at_utc="now", env={})
    assert prov.ci_run_id is None
    assert prov.hostname is not None


def test_run_ids_are_unique() -> None:
    assert new_run_id() != new_run_id()
