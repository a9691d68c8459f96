"""AWS EC2 stack deployment helpers."""

from ec2_stack.core.deployments.aws_ec2.cleanup import (
    TeardownReport,
    delete_network,
    teardown_stack,
)
from ec2_stack.core.deployments.aws_ec2.compute import (
    create_compute_stack,
    delete_compute_stack,
    wait_for_stack,
)
from ec2_stack.core.deployments.aws_ec2.dns import (
    apply_records,
    build_record_plan,
    delete_records,
    lookup_zone,
)
from ec2_stack.core.deployments.aws_ec2.images import lookup_image, supported_os
from ec2_stack.core.deployments.aws_ec2.models import (
    ComputeOutputs,
    Created,
    Discovered,
    HostedZone,
    NetworkResources,
)
from ec2_stack.core.deployments.aws_ec2.network import resolve_network
from ec2_stack.core.deployments.aws_ec2.session import create_session, get_identity
from ec2_stack.core.deployments.aws_ec2.status import check_stack

__all__ = [
    "ComputeOutputs",
    "Created",
    "Discovered",
    "HostedZone",
    "NetworkResources",
    "TeardownReport",
    "apply_records",
    "build_record_plan",
    "check_stack",
    "create_compute_stack",
    "create_session",
    "delete_compute_stack",
    "delete_network",
    "delete_records",
    "get_identity",
    "lookup_image",
    "lookup_zone",
    "resolve_network",
    "supported_os",
    "teardown_stack",
    "wait_for_stack",
]
