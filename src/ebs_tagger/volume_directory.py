"""EC2 client for volume discovery and tagging.

This module is the only place that talks to AWS. It provides:
1. Discovery of the EBS volumes owned by a cluster (``DescribeVolumes``)
2. Tag application on one or more resources (``CreateTags``)

The boto3 client is synchronous; calls are wrapped in the default executor
and awaited, so from the reconciler's point of view each call blocks until
it completes. Pagination and transport retries are left to boto3/botocore.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from .models import OwnershipFilter, Tag, Volume

logger = logging.getLogger(__name__)

# botocore client settings
CLIENT_CONNECT_TIMEOUT_SECONDS = 10
CLIENT_READ_TIMEOUT_SECONDS = 60
CLIENT_MAX_ATTEMPTS = 5

# DescribeVolumes page size (EC2 maximum is 500)
DESCRIBE_VOLUMES_PAGE_SIZE = 500


class ReconcileError(Exception):
    """Base class for errors that fail a reconciliation pass."""

    pass


class DiscoveryError(ReconcileError):
    """Raised when the owned volumes cannot be listed."""

    def __init__(self, cluster_name: str, message: str) -> None:
        super().__init__(f"Failed to list volumes of cluster '{cluster_name}': {message}")
        self.cluster_name = cluster_name


class TagApplyError(ReconcileError):
    """Raised when tags cannot be applied to a resource."""

    def __init__(self, resource_ids: Sequence[str], message: str) -> None:
        super().__init__(f"Failed to tag {', '.join(resource_ids)}: {message}")
        self.resource_ids = list(resource_ids)


def _describe_error(error: Exception) -> str:
    """Short description of a botocore error for logs and messages."""
    if isinstance(error, ClientError):
        details = error.response.get("Error", {})
        code = details.get("Code", "Unknown")
        return f"{code}: {details.get('Message', str(error))}"
    return str(error)


class Ec2VolumeDirectory:
    """Lists cluster-owned EBS volumes and applies tags to them."""

    def __init__(self, client: Any) -> None:
        """Initialize with an EC2 client.

        Args:
            client: boto3 EC2 client (or an object with the same interface).
        """
        self._client = client

    @classmethod
    def for_region(cls, region: str) -> Ec2VolumeDirectory:
        """Create a directory backed by a new EC2 client for ``region``.

        Credentials are resolved by the default boto3 chain (IRSA, instance
        profile, environment).
        """
        client = boto3.client(
            "ec2",
            region_name=region,
            config=BotoConfig(
                connect_timeout=CLIENT_CONNECT_TIMEOUT_SECONDS,
                read_timeout=CLIENT_READ_TIMEOUT_SECONDS,
                retries={"max_attempts": CLIENT_MAX_ATTEMPTS, "mode": "adaptive"},
            ),
        )
        return cls(client)

    async def list_owned_volumes(self, ownership: OwnershipFilter) -> list[Volume]:
        """List the volumes matching ``ownership``, in the order EC2 returns them.

        Raises:
            DiscoveryError: If the EC2 API call fails.
        """
        loop = asyncio.get_event_loop()
        try:
            raw_volumes = await loop.run_in_executor(None, self._describe_volumes, ownership)
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "DescribeVolumes failed",
                extra={"cluster_name": ownership.cluster_name, "error": _describe_error(e)},
            )
            raise DiscoveryError(ownership.cluster_name, _describe_error(e)) from e

        try:
            volumes = [Volume.from_aws(raw) for raw in raw_volumes]
        except ValidationError as e:
            raise DiscoveryError(ownership.cluster_name, f"unexpected response: {e}") from e

        logger.info(
            "Discovered owned volumes",
            extra={"cluster_name": ownership.cluster_name, "volume_count": len(volumes)},
        )
        return volumes

    def _describe_volumes(self, ownership: OwnershipFilter) -> list[dict[str, Any]]:
        paginator = self._client.get_paginator("describe_volumes")
        volumes: list[dict[str, Any]] = []
        for page in paginator.paginate(
            Filters=ownership.to_ec2_filters(),
            PaginationConfig={"PageSize": DESCRIBE_VOLUMES_PAGE_SIZE},
        ):
            volumes.extend(page.get("Volumes", []))
        return volumes

    async def apply_tags(self, resource_ids: Sequence[str], tags: Sequence[Tag]) -> None:
        """Create or overwrite ``tags`` on every resource in ``resource_ids``.

        A single ``CreateTags`` call covers all tags. Writing a tag that
        already holds the same value is a no-op on the EC2 side.

        Raises:
            TagApplyError: If the EC2 API call fails.
        """
        if not resource_ids or not tags:
            return

        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(
                None,
                lambda: self._client.create_tags(
                    Resources=list(resource_ids),
                    Tags=[tag.to_aws() for tag in tags],
                ),
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "CreateTags failed",
                extra={"resource_ids": list(resource_ids), "error": _describe_error(e)},
            )
            raise TagApplyError(resource_ids, _describe_error(e)) from e
