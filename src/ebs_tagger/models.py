"""Typed models for volumes, tags and tag mutations.

These models provide:
1. Type-safe parsing of EC2 ``DescribeVolumes`` output
2. An explicit ownership predicate instead of an ad-hoc query string
3. The mutation records the reconciler derives and the directory applies
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

# Ownership convention used by Kubernetes cloud providers on AWS
CLUSTER_TAG_KEY_PREFIX = "kubernetes.io/cluster/"
OWNED_TAG_VALUE = "owned"


class Tag(BaseModel):
    """A single EC2 tag."""

    model_config = {"extra": "ignore", "frozen": True, "populate_by_name": True}

    key: str = Field(alias="Key")
    value: str = Field("", alias="Value")

    def to_aws(self) -> dict[str, str]:
        """Render the tag in the shape EC2 expects."""
        return {"Key": self.key, "Value": self.value}


class Volume(BaseModel):
    """EBS volume as returned by ``DescribeVolumes``.

    Only the fields the tagger reads are modelled; everything else is ignored.
    Tags may contain duplicate keys, in which case the first one wins.
    """

    model_config = {"extra": "ignore", "populate_by_name": True}

    volume_id: str = Field(alias="VolumeId", min_length=1)
    tags: list[Tag] = Field(default_factory=list, alias="Tags")
    state: str | None = Field(None, alias="State")
    size: int | None = Field(None, alias="Size")
    availability_zone: str | None = Field(None, alias="AvailabilityZone")

    @classmethod
    def from_aws(cls, data: dict[str, Any]) -> Volume:
        """Parse one entry of the ``Volumes`` list."""
        return cls.model_validate(data)

    def get_tag(self, key: str) -> str | None:
        """Return the value of the first tag named ``key``, if any."""
        for tag in self.tags:
            if tag.key == key:
                return tag.value
        return None

    def tag_map(self) -> dict[str, str]:
        """Tags as a mapping, keeping the first occurrence of each key."""
        result: dict[str, str] = {}
        for tag in self.tags:
            result.setdefault(tag.key, tag.value)
        return result


class MutationKind(str, Enum):
    """Why a tag is part of a mutation batch."""

    CREATE = "create"
    UPDATE = "update"


@dataclass(frozen=True)
class TagMutation:
    """One tag write queued for a volume."""

    key: str
    value: str
    kind: MutationKind
    previous_value: str | None = None

    def to_tag(self) -> Tag:
        return Tag(key=self.key, value=self.value)


@dataclass(frozen=True)
class OwnershipFilter:
    """Predicate selecting the volumes owned by a cluster.

    A volume belongs to the cluster when it carries the tag
    ``kubernetes.io/cluster/<cluster_name>`` with the value ``owned``.
    """

    cluster_name: str

    def __post_init__(self) -> None:
        if not self.cluster_name:
            raise ValueError("cluster_name cannot be empty")

    @property
    def tag_key(self) -> str:
        return f"{CLUSTER_TAG_KEY_PREFIX}{self.cluster_name}"

    @property
    def tag_value(self) -> str:
        return OWNED_TAG_VALUE

    def to_ec2_filters(self) -> list[dict[str, Any]]:
        """Build the ``Filters`` argument for ``DescribeVolumes``."""
        return [{"Name": f"tag:{self.tag_key}", "Values": [self.tag_value]}]

    def matches(self, tags: Iterable[Tag]) -> bool:
        """Evaluate the predicate against a tag collection."""
        return any(tag.key == self.tag_key and tag.value == self.tag_value for tag in tags)
