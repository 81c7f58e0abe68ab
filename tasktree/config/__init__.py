"""Configuration module for tasktree."""

from tasktree.config.reorder_config import BoundaryPolicy, ReorderConfig

__all__ = ["BoundaryPolicy", "ReorderConfig"]
