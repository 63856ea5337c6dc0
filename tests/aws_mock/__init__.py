"""AWS API Mock for Integration Testing.

In-memory implementation of the EC2 operations used by the tagger, so the
reconciliation flow can be tested without AWS connectivity.

Key Features:
- Volume state with ordered (possibly duplicate) tags
- Tag-filter evaluation and pagination for DescribeVolumes
- CreateTags with call recording
- Error injection for discovery and tagging failures

Usage:
    from aws_mock import MockAwsContext, owned_volume

    with MockAwsContext(volumes=[owned_volume("vol-1", "prod")]) as ctx:
        directory = Ec2VolumeDirectory.for_region("us-west-2")
        ...
        assert ctx.client.create_tags_call_count == 1
"""

from .context import MockAwsContext
from .ec2 import MockEc2Client, MockVolume, make_client_error, owned_volume

__all__ = [
    "MockAwsContext",
    "MockEc2Client",
    "MockVolume",
    "make_client_error",
    "owned_volume",
]
