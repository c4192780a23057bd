"""
Shared pytest fixtures for all tests.

Example usage:

    def test_something(make_config, app):
        config = make_config(stage=Stage.PROD, brokers_per_az=2)
        vpc_stack, msk_stack = build_stacks(app, config)
"""

from collections.abc import Callable
from typing import Any

import aws_cdk as cdk
import pytest

from streaming_infra.config import Config, Stage

TEST_ACCOUNT = "123456789012"
TEST_REGION = "us-east-1"


@pytest.fixture
def base_env() -> dict[str, str]:
    """Minimal valid deployment environment."""
    return {
        "AWS_ACCOUNT_ID": TEST_ACCOUNT,
        "AWS_REGION": TEST_REGION,
        "STAGE": "Dev",
        "NS": "App",
    }


@pytest.fixture
def make_config() -> Callable[..., Config]:
    """Build a Config directly, overriding any field."""

    def _make(**overrides: Any) -> Config:
        stage = overrides.pop("stage", Stage.DEV)
        values: dict[str, Any] = {
            "namespace": f"App{stage.value}",
            "stage": stage,
            "aws_account": TEST_ACCOUNT,
            "aws_region": TEST_REGION,
        }
        values.update(overrides)
        return Config(**values)

    return _make


@pytest.fixture
def app() -> cdk.App:
    """CDK app with availability zones pre-resolved for the test account."""
    return cdk.App(
        context={
            f"availability-zones:account={TEST_ACCOUNT}:region={TEST_REGION}": [
                "us-east-1a",
                "us-east-1b",
            ],
        }
    )


@pytest.fixture
def imported_vpc_settings() -> dict[str, Any]:
    """Config overrides for deploying into an existing VPC."""
    return {
        "vpc_id": "vpc-0123456789abcdef0",
        "subnet_topology": {"subnet-1": "us-east-1a", "subnet-2": "us-east-1b"},
    }
