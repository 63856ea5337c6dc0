"""AWS Mock Context for integration testing.

Provides a context manager that patches boto3 client creation with the
in-memory mock EC2 client.
"""

from __future__ import annotations

from typing import Any
from unittest import mock

from .ec2 import MockEc2Client, MockVolume


class MockAwsContext:
    """Context manager for AWS API mocking in integration tests.

    Patches:
    - boto3.client (as used by ebs_tagger.volume_directory) → MockEc2Client

    Usage:
        with MockAwsContext(volumes=[owned_volume("vol-1", "prod")]) as ctx:
            directory = Ec2VolumeDirectory.for_region("us-west-2")
            ...
            assert ctx.client.create_tags_call_count == 1
    """

    def __init__(
        self,
        *,
        volumes: list[MockVolume] | None = None,
        describe_failures: int = 0,
        fail_create_tags_for: set[str] | None = None,
    ) -> None:
        self._volumes = volumes or []
        self._describe_failures = describe_failures
        self._fail_create_tags_for = fail_create_tags_for or set()

        # These are set when context is entered
        self._client: MockEc2Client | None = None
        self._patches: list[Any] = []
        self.client_kwargs: list[dict[str, Any]] = []

    @property
    def client(self) -> MockEc2Client:
        """Get the mock EC2 client.

        Raises:
            RuntimeError: If accessed outside of context.
        """
        if self._client is None:
            raise RuntimeError("MockAwsContext must be used as a context manager")
        return self._client

    def __enter__(self) -> MockAwsContext:
        """Enter the mock context, applying patches."""
        self._client = MockEc2Client(volumes=self._volumes)
        self._client.describe_failures = self._describe_failures
        self._client.fail_create_tags_for = set(self._fail_create_tags_for)

        def create_mock_client(service_name: str, **kwargs: Any) -> MockEc2Client:
            if service_name != "ec2":
                raise NotImplementedError(service_name)
            self.client_kwargs.append(kwargs)
            assert self._client is not None
            return self._client

        client_patch = mock.patch(
            "ebs_tagger.volume_directory.boto3.client",
            side_effect=create_mock_client,
        )
        self._patches.append(client_patch)

        for patch in self._patches:
            patch.start()

        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit the mock context, removing patches."""
        for patch in reversed(self._patches):
            patch.stop()
        self._patches.clear()
