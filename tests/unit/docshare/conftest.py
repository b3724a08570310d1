"""Fixtures for the document-sharing tests."""

import pytest

from sharing_harness import Harness, build_harness


@pytest.fixture
def harness() -> Harness:
    return build_harness()


@pytest.fixture
def make_harness():
    return build_harness
