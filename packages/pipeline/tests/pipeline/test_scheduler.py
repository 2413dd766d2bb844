from __future__ import annotations

import threading

import pytest
import structlog

from cicd_pipeline.core import StageExecutionError, TransientError
from cicd_pipeline.pipeline import (
    JobGraph,
    RunStatus,
    Scheduler,
    SkipReason,
    Stage,
    StageStatus,
    TriggerContext,
)

COMMIT = "9f8e7d6c5b4a39281706f5e4d3c2b1a098765432"


class Recorder:
    def __init__(self) -> None:
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def ok(self, name: str, **out):
        def _action(sctx):
            with self._lock:
                self.calls.append(name)
            return dict(out)

        return _action

    def fail(self, name: str):
        def _action(sctx):
            with self._lock:
                self.calls.append(name)
            raise StageExecutionError(f"{name} exploded", returncode=1)

        return _action


@pytest.fixture
def push() -> TriggerContext:
    return TriggerContext.direct_push(branch="main", commit_id=COMMIT)


def test_all_stages_succeed_in_dependency_order(make_run_context, push) -> None:
    rec = Recorder()
    graph = JobGraph(
        [
            Stage.define("a", rec.ok("a", value=1)),
            Stage.define("b", lambda sctx: {"seen": sctx.upstream("a")["value"]}, needs=["a"]),
            Stage.define("c", rec.ok("c"), needs=["b"]),
        ]
    )
    outcome = Scheduler().execute(graph, make_run_context(push))

    assert outcome.status is RunStatus.SUCCESS
    assert outcome.exit_code == 0
    assert outcome.failing_stage is None
    assert [r.stage for r in outcome.stages] == ["a", "b", "c"]
    assert outcome.result("b").outputs == {"seen": 1}
    assert rec.calls == ["a", "c"]


def test_failure_skips_every_dependent_without_invoking_it(make_run_context, push) -> None:
    rec = Recorder()
    graph = JobGraph(
        [
            Stage.define("lint", rec.fail("lint")),
            Stage.define("build", rec.ok("build"), needs=["lint"]),
            Stage.define("test", rec.ok("test"), needs=["lint"]),
            Stage.define("package", rec.ok("package"), needs=["build", "test"]),
        ]
    )
    ctx = make_run_context(push)
    outcome = Scheduler().execute(graph, ctx)

    assert outcome.status is RunStatus.FAILED
    assert outcome.exit_code == 1
    assert outcome.failing_stage == "lint"
    assert rec.calls == ["lint"]
    for name in ("build", "test", "package"):
        r = outcome.result(name)
        assert r.status is StageStatus.SKIPPED
        assert r.skip_reason is SkipReason.UPSTREAM_FAILED

    failed = outcome.result("lint")
    assert failed.error is not None
    assert failed.error.exc_type == "StageExecutionError"
    assert "StageExecutionError: lint exploded" in failed.error.traceback

    skipped = [e for e in ctx.events.read() if e["type"] == "stage.skipped"]
    assert {e["stage"] for e in skipped} == {"build", "test", "package"}


def test_independent_branch_completes_after_sibling_failure(make_run_context, push) -> None:
    rec = Recorder()
    graph = JobGraph(
        [
            Stage.define("a", rec.ok("a")),
            Stage.define("b", rec.fail("b"), needs=["a"]),
            Stage.define("c", rec.ok("c"), needs=["a"]),
            Stage.define("d", rec.ok("d"), needs=["b", "c"]),
        ]
    )
    outcome = Scheduler(max_workers=1).execute(graph, make_run_context(push))

    assert outcome.failing_stage == "b"
    assert outcome.result("c").status is StageStatus.SUCCESS
    assert outcome.result("d").skip_reason is SkipReason.UPSTREAM_FAILED
    assert "d" not in rec.calls


def test_independent_stages_run_concurrently(make_run_context, push) -> None:
    barrier = threading.Barrier(2, timeout=10)

    def meet(sctx):
        barrier.wait()
        return {"thread": threading.current_thread().name}

    graph = JobGraph(
        [
            Stage.define("lint", lambda sctx: None),
            Stage.define("build", meet, needs=["lint"]),
            Stage.define("test", meet, needs=["lint"]),
        ]
    )
    outcome = Scheduler(max_workers=2).execute(graph, make_run_context(push))

    assert outcome.status is RunStatus.SUCCESS
    assert outcome.result("build").outputs["thread"] != outcome.result("test").outputs["thread"]


def test_predicate_skip_unblocks_dependents_but_withholds_artifacts(make_run_context) -> None:
    pr = TriggerContext.proposed_change(change_id="42", target_branch="main", commit_id=COMMIT)
    rec = Recorder()
    graph = JobGraph(
        [
            Stage.define("a", rec.ok("a")),
            Stage.define(
                "gated",
                rec.ok("gated"),
                needs=["a"],
                when=lambda ctx: not ctx.is_proposed_change,
                produces=["x"],
            ),
            Stage.define("uses_x", rec.ok("uses_x"), needs=["gated"], consumes=["x"]),
            Stage.define("after_uses_x", rec.ok("after_uses_x"), needs=["uses_x"]),
            Stage.define("plain", rec.ok("plain"), needs=["gated"]),
        ]
    )
    outcome = Scheduler().execute(graph, make_run_context(pr))

    assert outcome.status is RunStatus.SUCCESS
    assert outcome.result("gated").skip_reason is SkipReason.CONDITION
    assert outcome.result("uses_x").skip_reason is SkipReason.MISSING_ARTIFACT
    assert outcome.result("after_uses_x").status is StageStatus.SUCCESS
    assert outcome.result("plain").status is StageStatus.SUCCESS
    assert sorted(rec.calls) == ["a", "after_uses_x", "plain"]


def test_every_stage_skipped_is_a_skipped_run(make_run_context, push) -> None:
    graph = JobGraph(
        [
            Stage.define("a", lambda sctx: None, when=lambda ctx: False),
            Stage.define("b", lambda sctx: None, when=lambda ctx: False, needs=["a"]),
        ]
    )
    outcome = Scheduler().execute(graph, make_run_context(push))

    assert outcome.status is RunStatus.SKIPPED
    assert outcome.exit_code == 0


def test_declared_artifact_must_be_produced(make_run_context, push) -> None:
    graph = JobGraph([Stage.define("build", lambda sctx: {}, produces=["binary"])])
    outcome = Scheduler().execute(graph, make_run_context(push))

    assert outcome.failing_stage == "build"
    assert outcome.result("build").error.exc_type == "MissingArtifactError"


def test_artifact_handoff_between_stages(make_run_context, push) -> None:
    def produce(sctx):
        sctx.put_artifact("binary", b"compiled")
        return None

    def consume(sctx):
        return {"payload": sctx.artifact_path("binary").read_bytes().decode()}

    def sneaky(sctx):
        sctx.put_artifact("other", b"nope")

    graph = JobGraph(
        [
            Stage.define("build", produce, produces=["binary"]),
            Stage.define("package", consume, needs=["build"], consumes=["binary"]),
            Stage.define("sneaky", sneaky, needs=["build"]),
        ]
    )
    ctx = make_run_context(push)
    outcome = Scheduler().execute(graph, ctx)

    assert outcome.result("build").artifacts == ["binary"]
    assert outcome.result("package").outputs == {"payload": "compiled"}
    assert outcome.result("sneaky").error.exc_type == "InternalError"
    assert any(e["type"] == "artifact.written" for e in ctx.events.read())


def test_transient_failures_are_retried_when_configured(make_run_context, settings, push) -> None:
    attempts: list[int] = []

    def flaky(sctx):
        attempts.append(1)
        if len(attempts) < 3:
            raise TransientError("registry timeout")
        return {"attempts": len(attempts)}

    graph = JobGraph([Stage.define("publish", flaky)])
    retrying = settings.model_copy(update={"stage_retries": {"publish": 3}})
    outcome = Scheduler().execute(graph, make_run_context(push, run_settings=retrying))

    assert outcome.status is RunStatus.SUCCESS
    assert outcome.result("publish").outputs == {"attempts": 3}


def test_failures_are_not_retried_by_default(make_run_context, push) -> None:
    attempts: list[int] = []

    def flaky(sctx):
        attempts.append(1)
        raise TransientError("registry timeout")

    outcome = Scheduler().execute(
        JobGraph([Stage.define("publish", flaky)]), make_run_context(push)
    )
    assert outcome.status is RunStatus.FAILED
    assert len(attempts) == 1


def test_warnings_and_metrics_are_split_from_outputs(make_run_context, push) -> None:
    def action(sctx):
        return {"value": 1, "_warnings": ["slow mirror"], "_metrics": {"files": 3}}

    outcome = Scheduler().execute(
        JobGraph([Stage.define("a", action)]), make_run_context(push)
    )
    r = outcome.result("a")
    assert r.outputs == {"value": 1}
    assert r.warnings == ["slow mirror"]
    assert r.metrics == {"files": 3}


def test_stage_threads_inherit_run_log_bindings(make_run_context, push) -> None:
    def bound(sctx):
        return dict(structlog.contextvars.get_contextvars())

    graph = JobGraph(
        [
            Stage.define("a", bound),
            Stage.define("b", bound, needs=["a"]),
        ]
    )
    structlog.contextvars.bind_contextvars(run_id="RID", event_kind="push")
    try:
        outcome = Scheduler(max_workers=2).execute(graph, make_run_context(push))
    finally:
        structlog.contextvars.clear_contextvars()

    for name in ("a", "b"):
        assert outcome.result(name).outputs == {"run_id": "RID", "event_kind": "push"}
