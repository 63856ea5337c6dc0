"""Tag reconciliation for cluster-owned EBS volumes.

One pass of the reconciler:
1. List the volumes owned by the cluster
2. For each volume, diff its tags against the desired tag map
3. Apply the resulting batch with a single CreateTags call per volume

Tags are only ever created or overwritten, never removed. A tag holding a
different value than desired is overwritten only when the overwrite policy
allows it; otherwise the mismatch is logged and left alone.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from .config import Config
from .models import MutationKind, OwnershipFilter, Tag, TagMutation, Volume
from .throttle import ApplyThrottle

logger = logging.getLogger(__name__)


class VolumeDirectory(Protocol):
    """Volume discovery and tagging operations the reconciler depends on."""

    async def list_owned_volumes(self, ownership: OwnershipFilter) -> list[Volume]: ...

    async def apply_tags(self, resource_ids: list[str], tags: list[Tag]) -> None: ...


def compute_mutations(
    volume: Volume,
    desired_tags: Mapping[str, str],
    overwrite_if_different: bool,
) -> list[TagMutation]:
    """Compute the tag writes needed to converge ``volume`` on ``desired_tags``.

    Args:
        volume: Volume with its current tags.
        desired_tags: Desired tag key/value pairs. Not modified.
        overwrite_if_different: Whether tags holding another value are overwritten.

    Returns:
        Mutations in desired-tag iteration order. Empty if already converged.
    """
    current = volume.tag_map()
    mutations: list[TagMutation] = []

    for key, desired_value in desired_tags.items():
        if key not in current:
            logger.info(
                "Queuing creation of missing tag",
                extra={"volume_id": volume.volume_id, "tag_key": key, "tag_value": desired_value},
            )
            mutations.append(TagMutation(key=key, value=desired_value, kind=MutationKind.CREATE))
            continue

        current_value = current[key]
        if current_value == desired_value:
            logger.debug(
                "Tag already converged",
                extra={"volume_id": volume.volume_id, "tag_key": key, "tag_value": desired_value},
            )
            continue

        if overwrite_if_different:
            logger.info(
                "Queuing update of tag with different value",
                extra={
                    "volume_id": volume.volume_id,
                    "tag_key": key,
                    "current_value": current_value,
                    "desired_value": desired_value,
                },
            )
            mutations.append(
                TagMutation(
                    key=key,
                    value=desired_value,
                    kind=MutationKind.UPDATE,
                    previous_value=current_value,
                )
            )
        else:
            logger.info(
                "Not updating tag with different value, overwrite is disabled",
                extra={
                    "volume_id": volume.volume_id,
                    "tag_key": key,
                    "current_value": current_value,
                    "desired_value": desired_value,
                },
            )

    return mutations


def count_blocked_mismatches(
    volume: Volume,
    desired_tags: Mapping[str, str],
    overwrite_if_different: bool,
) -> int:
    """Number of desired tags that differ on ``volume`` but may not be overwritten."""
    if overwrite_if_different:
        return 0
    current = volume.tag_map()
    return sum(
        1 for key, value in desired_tags.items() if key in current and current[key] != value
    )


@dataclass
class PassResult:
    """Outcome of a single reconciliation pass."""

    cluster_name: str
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    volumes_discovered: int = 0
    volumes_converged: int = 0
    volumes_tagged: int = 0
    volumes_skipped: int = 0  # Had changes, but tagging is disabled
    mutations_applied: int = 0
    mutations_blocked: int = 0  # Mismatches left alone by the overwrite policy

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()


class TagReconciler:
    """Converges the tags of a cluster's EBS volumes on the desired set."""

    def __init__(
        self,
        config: Config,
        directory: VolumeDirectory,
        throttle: ApplyThrottle | None = None,
    ) -> None:
        """Initialize the reconciler.

        Args:
            config: Validated tagger configuration.
            directory: Volume discovery and tagging backend.
            throttle: Pacing for apply calls. Built from the config if omitted.
        """
        self._config = config
        self._directory = directory
        self._throttle = throttle or ApplyThrottle(config.apply_pacing_seconds)
        self._ownership = OwnershipFilter(config.cluster_name)

    @property
    def config(self) -> Config:
        return self._config

    @property
    def ownership(self) -> OwnershipFilter:
        return self._ownership

    async def reconcile_once(self) -> PassResult:
        """Execute a single reconciliation pass.

        Volumes are processed in discovery order. A failed apply aborts the
        rest of the pass; remaining volumes are picked up by the next pass.

        Returns:
            PassResult with per-pass counters.

        Raises:
            DiscoveryError: If the owned volumes cannot be listed.
            TagApplyError: If applying tags to a volume fails.
        """
        result = PassResult(cluster_name=self._config.cluster_name)
        desired_tags = self._config.desired_tags

        volumes = await self._directory.list_owned_volumes(self._ownership)
        result.volumes_discovered = len(volumes)

        for volume in volumes:
            mutations = compute_mutations(
                volume, desired_tags, self._config.overwrite_if_different
            )
            result.mutations_blocked += count_blocked_mismatches(
                volume, desired_tags, self._config.overwrite_if_different
            )

            if not mutations:
                result.volumes_converged += 1
                continue

            if not self._config.tagging_enabled:
                logger.info(
                    "Tagging disabled, would have applied tags",
                    extra={
                        "volume_id": volume.volume_id,
                        "tags": {m.key: m.value for m in mutations},
                    },
                )
                result.volumes_skipped += 1
                continue

            await self._throttle.acquire()
            await self._directory.apply_tags(
                [volume.volume_id], [mutation.to_tag() for mutation in mutations]
            )
            self._throttle.record_apply()
            logger.info(
                "Applied tags",
                extra={
                    "volume_id": volume.volume_id,
                    "created_keys": [m.key for m in mutations if m.kind == MutationKind.CREATE],
                    "updated_keys": [m.key for m in mutations if m.kind == MutationKind.UPDATE],
                },
            )
            result.volumes_tagged += 1
            result.mutations_applied += len(mutations)

        result.end_time = datetime.now(UTC)
        logger.info(
            "Reconciliation pass complete",
            extra={
                "cluster_name": result.cluster_name,
                "volumes_discovered": result.volumes_discovered,
                "volumes_converged": result.volumes_converged,
                "volumes_tagged": result.volumes_tagged,
                "volumes_skipped": result.volumes_skipped,
                "mutations_applied": result.mutations_applied,
                "mutations_blocked": result.mutations_blocked,
                "duration_seconds": round(result.duration_seconds, 3),
            },
        )
        return result
