from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from cicd_pipeline.core import (
    GraphDefinitionError,
    Settings,
    TriggerError,
    bind,
    configure_logging,
    get_logger,
    load_settings,
    new_run_id,
)
from cicd_pipeline.pipeline import (
    JobGraph,
    PipelineRunner,
    RunOutcome,
    StageStatus,
    TriggerContext,
    tag_resolver_for,
    trigger_from_env,
)
from cicd_pipeline.stages import build_job_graph, default_collaborators

console = Console()

EXIT_USAGE = 2

_STATUS_STYLE = {
    StageStatus.SUCCESS: "[green]success[/green]",
    StageStatus.FAILED: "[red]failed[/red]",
    StageStatus.SKIPPED: "[yellow]skipped[/yellow]",
}


@dataclass(frozen=True, slots=True)
class _CommonArgs:
    cmd: str
    from_env: bool
    event: str | None
    branch: str | None
    sha: str | None
    pr: str | None
    workspace: str | None
    workers: int | None
    keep_artifacts: bool


def _add_trigger_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--from-env",
        action="store_true",
        help="Read the trigger from GITHUB_EVENT_NAME / GITHUB_SHA / GITHUB_REF_NAME etc.",
    )
    p.add_argument("--event", choices=("push", "pull_request"), help="Trigger kind")
    p.add_argument(
        "--branch",
        help="Pushed branch (push) or target branch (pull_request). Defaults to the tracked branch.",
    )
    p.add_argument("--sha", help="Commit id the run builds")
    p.add_argument("--pr", help="Proposed-change number (pull_request only)")
    p.add_argument("--workspace", default=None, help="Repository checkout (default: CICD_WORKSPACE or .)")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="cicd-pipeline")
    sub = p.add_subparsers(dest="cmd", required=True)

    commands: dict[str, str] = {
        "run": "Run the complete pipeline for a trigger",
        "tags": "Print the image tags a trigger resolves to",
    }
    for cmd, help_text in commands.items():
        sp = sub.add_parser(cmd, help=help_text)
        _add_trigger_args(sp)
        if cmd == "run":
            sp.add_argument("--workers", type=int, default=None, help="Concurrent stages")
            sp.add_argument(
                "--keep-artifacts",
                action="store_true",
                help="Keep artifact payloads under the run directory",
            )

    sub.add_parser("graph", help="Print the stage graph by dependency level")
    return p


def _common(args: argparse.Namespace) -> _CommonArgs:
    return _CommonArgs(
        cmd=str(args.cmd),
        from_env=bool(getattr(args, "from_env", False)),
        event=getattr(args, "event", None),
        branch=getattr(args, "branch", None),
        sha=getattr(args, "sha", None),
        pr=getattr(args, "pr", None),
        workspace=getattr(args, "workspace", None),
        workers=getattr(args, "workers", None),
        keep_artifacts=bool(getattr(args, "keep_artifacts", False)),
    )


def _trigger(common: _CommonArgs, settings: Settings) -> TriggerContext:
    if common.from_env:
        trigger = trigger_from_env()
    else:
        if not common.event or not common.sha:
            raise TriggerError("--event and --sha are required unless --from-env is given")
        branch = common.branch or settings.tracked_branch
        if common.event == "push":
            trigger = TriggerContext.direct_push(branch=branch, commit_id=common.sha)
        else:
            trigger = TriggerContext.proposed_change(
                change_id=common.pr or "", target_branch=branch, commit_id=common.sha
            )

    if not trigger.targets(settings.tracked_branch):
        raise TriggerError(
            f"Trigger targets {trigger.branch_name!r}; only {settings.tracked_branch!r} is tracked"
        )
    return trigger


def _print_graph(graph: JobGraph) -> None:
    tbl = Table(title="Stages", show_header=True, box=None)
    tbl.add_column("level")
    tbl.add_column("stage")
    tbl.add_column("needs")
    tbl.add_column("produces")
    tbl.add_column("consumes")
    for level, names in enumerate(graph.levels()):
        for name in names:
            st = graph[name]
            tbl.add_row(
                str(level),
                name,
                ", ".join(sorted(st.depends_on)) or "-",
                ", ".join(sorted(st.produces)) or "-",
                ", ".join(sorted(st.consumes)) or "-",
            )
    console.print(tbl)


def _print_outcome(outcome: RunOutcome, report_path: Path) -> None:
    tbl = Table(title="Result", show_header=True, box=None)
    tbl.add_column("stage")
    tbl.add_column("status")
    tbl.add_column("detail")
    for r in outcome.stages:
        detail = ""
        if r.error is not None:
            detail = r.error.message.splitlines()[0] if r.error.message else r.error.exc_type
        elif r.skip_detail:
            detail = r.skip_detail
        tbl.add_row(r.stage, _STATUS_STYLE[r.status], Text(detail))
    console.print(tbl)

    summary = Table(show_header=False, box=None)
    summary.add_row(
        "status",
        "[red]failed[/red]" if outcome.exit_code else f"[green]{outcome.status.value}[/green]",
    )
    if outcome.failing_stage:
        summary.add_row("failing stage", outcome.failing_stage)
    summary.add_row("report", str(report_path))
    console.print(summary)


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    common = _common(args)

    s = load_settings()
    overrides: dict[str, Any] = {}
    if common.workspace:
        overrides["workspace"] = Path(common.workspace)
    if common.workers:
        overrides["workers"] = common.workers
    if common.keep_artifacts:
        overrides["keep_artifacts"] = True
    if overrides:
        s = s.model_copy(update=overrides)
    configure_logging(level=s.log_level, fmt=s.log_format)
    log = get_logger("cicd_pipeline")

    try:
        graph = build_job_graph()
    except GraphDefinitionError as e:
        console.print(f"[red]invalid pipeline definition:[/red] {e}")
        return EXIT_USAGE

    if common.cmd == "graph":
        _print_graph(graph)
        return 0

    try:
        trigger = _trigger(common, s)
    except TriggerError as e:
        console.print(f"[red]invalid trigger:[/red] {e}")
        return EXIT_USAGE

    if common.cmd == "tags":
        tags = tag_resolver_for(s).resolve(trigger)
        tbl = Table(title="Tags", show_header=True, box=None)
        tbl.add_column("tag")
        tbl.add_column("scheme")
        for i, t in enumerate(tags):
            tbl.add_row(f"{s.image_name}:{t.value}", t.scheme.value + (" (primary)" if i == 0 else ""))
        console.print(tbl)
        return 0

    run_id = new_run_id()
    bind(run_id=run_id, event_kind=trigger.event_kind.value, commit=trigger.commit_id)

    console.print(
        Panel.fit(
            Text(
                f"cicd-pipeline - {common.cmd}\nrun_id={run_id}\n"
                f"event={trigger.event_kind.value} branch={trigger.branch_name} "
                f"commit={trigger.commit_id}",
                style="bold",
            ),
            title="Run",
        )
    )

    runner = PipelineRunner(
        graph=graph, settings=s, tools=default_collaborators(s), logger=log
    )
    meta: dict[str, Any] = {"workspace": str(s.workspace)}
    result = runner.run(trigger, run_id=run_id, meta=meta)

    _print_outcome(result.outcome, result.report_path)
    return int(result.exit_code)


if __name__ == "__main__":
    raise SystemExit(main())
