from .stage import BINARY_ARTIFACT, stage_build

__all__ = ["BINARY_ARTIFACT", "stage_build"]
