from .build import stage_build
from .containerize import stage_containerize
from .definition import (
    STAGE_NAMES,
    build_job_graph,
    default_collaborators,
    pipeline_stages,
)
from .lint import stage_lint
from .publish import stage_publish
from .record import stage_record
from .scan import stage_scan
from .test import stage_test

__all__ = [
    "STAGE_NAMES",
    "build_job_graph",
    "default_collaborators",
    "pipeline_stages",
    "stage_lint",
    "stage_build",
    "stage_test",
    "stage_containerize",
    "stage_scan",
    "stage_publish",
    "stage_record",
]
