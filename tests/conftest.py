"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for aws_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from ebs_tagger.config import Config  # noqa: E402

CLUSTER_NAME = "prod-eks"


@pytest.fixture
def config() -> Config:
    """Configuration with one desired tag and no pacing."""
    return Config(
        cluster_name=CLUSTER_NAME,
        region="us-west-2",
        desired_tags={"team": "platform"},
        interval_minutes=0.0001,
        apply_pacing_seconds=0,
    )
