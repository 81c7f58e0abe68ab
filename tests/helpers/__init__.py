"""Test helpers for tasktree tests.

Provides the fake ordering authority and small assertions about task
collections.
"""

from tests.helpers.fake_authority import AuthorityError, FakeOrderingAuthority
from tests.helpers.assertions import (
    assert_dense_positions,
    assert_acyclic,
    scope_order,
)

__all__ = [
    "AuthorityError",
    "FakeOrderingAuthority",
    "assert_dense_positions",
    "assert_acyclic",
    "scope_order",
]
