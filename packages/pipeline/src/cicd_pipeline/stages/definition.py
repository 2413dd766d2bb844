"""The fixed lint -> build/test -> containerize -> scan -> publish -> record graph."""

from __future__ import annotations

from cicd_pipeline.core import Settings
from cicd_pipeline.pipeline import Collaborators, JobGraph, Stage, not_proposed_change

from .build import BINARY_ARTIFACT, stage_build
from .cargo import CargoToolchain
from .containerize import IMAGE_ARTIFACT, DockerImageBuilder, stage_containerize
from .lint import stage_lint
from .publish import DockerRegistry, stage_publish
from .record import GitVersionControl, stage_record
from .scan import TrivyScanner, stage_scan
from .test import stage_test

STAGE_NAMES: tuple[str, ...] = (
    "lint",
    "build",
    "test",
    "containerize",
    "scan",
    "publish",
    "record",
)


def pipeline_stages() -> list[Stage]:
    return [
        Stage.define("lint", stage_lint),
        Stage.define("build", stage_build, needs=["lint"], produces=[BINARY_ARTIFACT]),
        Stage.define("test", stage_test, needs=["lint"]),
        Stage.define(
            "containerize",
            stage_containerize,
            needs=["build", "test"],
            produces=[IMAGE_ARTIFACT],
        ),
        Stage.define(
            "scan", stage_scan, needs=["containerize"], consumes=[IMAGE_ARTIFACT]
        ),
        Stage.define(
            "publish",
            stage_publish,
            needs=["scan"],
            when=not_proposed_change,
            consumes=[IMAGE_ARTIFACT],
        ),
        Stage.define("record", stage_record, needs=["publish"], when=not_proposed_change),
    ]


def build_job_graph() -> JobGraph:
    return JobGraph(pipeline_stages())


def default_collaborators(settings: Settings) -> Collaborators:
    return Collaborators(
        toolchain=CargoToolchain(settings),
        image_builder=DockerImageBuilder(settings),
        scanner=TrivyScanner(settings),
        registry=DockerRegistry(settings),
        vcs=GitVersionControl(settings),
    )
