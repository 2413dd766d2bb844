from .stage import stage_lint

__all__ = ["stage_lint"]
