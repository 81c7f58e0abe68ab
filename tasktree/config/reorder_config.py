"""Reorder configuration models for tasktree.

This module provides Pydantic models for configuring drag-and-drop reordering
and reconciliation, including TOML file loading and environment overrides.
"""

import logging
import os
import sys
from enum import Enum
from pathlib import Path
from typing import Optional

# Use tomllib from stdlib in Python 3.11+, fallback to tomli for earlier versions
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".tasktree" / "reorder.toml"


class BoundaryPolicy(str, Enum):
    """How an edge drop between a parent and its first child is resolved."""

    SIBLING = "sibling"  # Prefer the shallower scope (next sibling of the parent)
    CHILD = "child"      # Prefer the deeper scope (first child of the parent)


class ReorderConfig(BaseModel):
    """Root reorder configuration.

    Attributes:
        boundary_policy: Tie-break for ambiguous edge drops.
        auto_expand: Expand every task with subtasks on first load.
        drift_check: Re-fetch authoritative positions after a submit and
            compare them with the optimistic prediction.
        submit_timeout: Seconds to wait for the ordering authority.
    """

    boundary_policy: BoundaryPolicy = BoundaryPolicy.SIBLING
    auto_expand: bool = True
    drift_check: bool = False
    submit_timeout: float = Field(default=10.0, gt=0, le=300)

    @classmethod
    def from_toml_file(cls, path: Optional[Path] = None) -> 'ReorderConfig':
        """Load configuration from TOML file with fallback to defaults.

        Args:
            path: Path to the TOML configuration file. If None, defaults to
                  ~/.tasktree/reorder.toml.

        Returns:
            ReorderConfig instance loaded from the ``[reorder]`` table or with
            default values.
        """
        if path is None:
            path = DEFAULT_CONFIG_PATH

        if not path.exists():
            logger.info(f"Config not found at {path}. Using defaults.")
            return cls()

        with open(path, 'rb') as f:
            data = tomllib.load(f)

        return cls(**data.get('reorder', {}))

    def with_env_overrides(self) -> 'ReorderConfig':
        """
        Return a copy with environment variable overrides applied.

        Environment variables take precedence over the config file:
        - TASKTREE_BOUNDARY_POLICY (sibling/child)
        - TASKTREE_AUTO_EXPAND (true/false)
        - TASKTREE_DRIFT_CHECK (true/false)
        - TASKTREE_SUBMIT_TIMEOUT (seconds)

        Returns:
            New validated ReorderConfig
        """
        data = self.model_dump()

        policy = os.getenv('TASKTREE_BOUNDARY_POLICY')
        if policy:
            data['boundary_policy'] = policy.lower()

        auto_expand_env = os.getenv('TASKTREE_AUTO_EXPAND', '').lower()
        if auto_expand_env:
            data['auto_expand'] = auto_expand_env == 'true'

        drift_env = os.getenv('TASKTREE_DRIFT_CHECK', '').lower()
        if drift_env:
            data['drift_check'] = drift_env == 'true'

        timeout_env = os.getenv('TASKTREE_SUBMIT_TIMEOUT')
        if timeout_env:
            data['submit_timeout'] = float(timeout_env)

        config = type(self).model_validate(data)
        logger.debug(
            f"Reorder config: boundary_policy={config.boundary_policy.value}, "
            f"auto_expand={config.auto_expand}, drift_check={config.drift_check}, "
            f"submit_timeout={config.submit_timeout}"
        )
        return config

    @classmethod
    def load(cls, path: Optional[Path] = None) -> 'ReorderConfig':
        """Load from TOML and apply environment overrides."""
        return cls.from_toml_file(path).with_env_overrides()
