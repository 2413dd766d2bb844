from .registry import DockerRegistry
from .stage import stage_publish

__all__ = ["DockerRegistry", "stage_publish"]
