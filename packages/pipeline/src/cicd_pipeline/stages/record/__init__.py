from .git import GitVersionControl
from .stage import stage_record

__all__ = ["GitVersionControl", "stage_record"]
