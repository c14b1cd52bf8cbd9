"""pytest fixtures for mockmode.

Loaded automatically through the ``pytest11`` entry point.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from mockmode.context import MockContext
from mockmode.testing import isolated_context


@pytest.fixture
def mock_context() -> Iterator[MockContext]:
    """A fresh MockContext with passthrough off, torn down after the test."""
    with isolated_context() as context:
        yield context
