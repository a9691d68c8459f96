"""Shared fixtures."""

import pytest

from ec2_stack.core.settings import StackDefaults
from tests.fakes import FakeSession


@pytest.fixture
def session() -> FakeSession:
    """Fake boto3 session with empty account state."""
    return FakeSession()


@pytest.fixture
def defaults() -> StackDefaults:
    """Defaults with instant polling."""
    return StackDefaults(
        region="us-east-1",
        os="amazon-linux-2023",
        instance_type="t3.micro",
        ttl=300,
        stack_timeout_seconds=5,
        poll_interval_seconds=0,
    )
