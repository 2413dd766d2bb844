from .stage import stage_test

__all__ = ["stage_test"]
