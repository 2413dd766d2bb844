from .docker import DockerImageBuilder
from .stage import IMAGE_ARTIFACT, image_labels, stage_containerize

__all__ = ["DockerImageBuilder", "IMAGE_ARTIFACT", "image_labels", "stage_containerize"]
