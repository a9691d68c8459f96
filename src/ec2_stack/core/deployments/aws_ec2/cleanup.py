"""Teardown of EC2 stack resources."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from botocore.exceptions import ClientError

from ec2_stack.core.deployments.aws_ec2.compute import delete_compute_stack
from ec2_stack.core.deployments.aws_ec2.dns import delete_records
from ec2_stack.core.deployments.aws_ec2.models import Created, NetworkResources, Owned
from ec2_stack.core.errors import DeletionWarning
from ec2_stack.core.models import StackConfig

logger = logging.getLogger(__name__)

MISSING_CODES = {
    "InvalidAssociationID.NotFound",
    "InvalidRouteTableID.NotFound",
    "InvalidSubnetID.NotFound",
    "InvalidInternetGatewayID.NotFound",
    "InvalidVpcID.NotFound",
    "Gateway.NotAttached",
}
DEPENDENCY_ATTEMPTS = 6


@dataclass
class TeardownReport:
    """Outcome of a teardown. Warnings never make it fail."""

    warnings: list[DeletionWarning] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.warnings


def teardown_stack(
    session: Any,
    config: StackConfig | None,
    stack_name: str,
    reporter: Callable[[str], None],
    timeout_seconds: int = 600,
    poll_interval_seconds: int = 15,
    retry_delay_seconds: int = 10,
) -> TeardownReport:
    """Delete a stack in reverse creation order.

    DNS records go first so nothing points at a vanishing address. The
    compute stack is awaited before the network because the instance holds
    the subnet. Only network resources created by this tool are deleted.
    Without a config, only the compute stack is deleted.

    Raises:
        ProvisioningError: When the compute stack deletion fails or times out.
    """
    report = TeardownReport()

    dns = config.dns if config else None
    if dns is not None and dns.zone_id and dns.records:
        reporter(f"Deleting {len(dns.records)} DNS record(s)")
        report.warnings.extend(delete_records(session, dns.zone_id, dns.records, reporter))

    if config is None or config.vm is not None:
        reporter(f"Deleting compute stack {stack_name}")
        delete_compute_stack(
            session,
            stack_name,
            reporter,
            timeout_seconds=timeout_seconds,
            poll_interval_seconds=poll_interval_seconds,
        )

    vm = config.vm if config else None
    if vm is not None and vm.network is not None and not vm.network.is_empty():
        network = NetworkResources.from_state(vm.network)
        report.warnings.extend(
            delete_network(session, network, reporter, retry_delay_seconds=retry_delay_seconds)
        )

    if config is not None:
        config.clear_outputs()
    return report


def delete_network(
    session: Any,
    network: NetworkResources,
    reporter: Callable[[str], None],
    retry_delay_seconds: int = 10,
) -> list[DeletionWarning]:
    """Delete tool-created network resources in reverse creation order.

    Discovered resources are never passed to a delete call.

    Returns:
        One warning per failed step.
    """
    ec2 = session.client("ec2")
    warnings: list[DeletionWarning] = []

    def step(name: str, resource: str, action: Callable[[], Any]) -> bool:
        warning = _run_step(name, resource, action, retry_delay_seconds)
        if warning is None:
            reporter(f"{name}: {resource}")
            return True
        logger.warning(str(warning))
        reporter(f"Warning: {warning}")
        warnings.append(warning)
        return False

    association = _owned(network.route_table_association)
    if association:
        step(
            "Disassociate route table",
            association.resource_id,
            lambda: ec2.disassociate_route_table(AssociationId=association.resource_id),
        )

    route_table = _owned(network.route_table)
    if route_table:
        step(
            "Delete route table",
            route_table.resource_id,
            lambda: ec2.delete_route_table(RouteTableId=route_table.resource_id),
        )

    subnet = _owned(network.subnet)
    if subnet:
        step(
            "Delete subnet",
            subnet.resource_id,
            lambda: ec2.delete_subnet(SubnetId=subnet.resource_id),
        )

    gateway = _owned(network.internet_gateway)
    if gateway:
        if network.vpc_id:
            step(
                "Detach internet gateway",
                gateway.resource_id,
                lambda: ec2.detach_internet_gateway(
                    InternetGatewayId=gateway.resource_id, VpcId=network.vpc_id
                ),
            )
        step(
            "Delete internet gateway",
            gateway.resource_id,
            lambda: ec2.delete_internet_gateway(InternetGatewayId=gateway.resource_id),
        )

    vpc = _owned(network.vpc)
    if vpc:
        step("Delete VPC", vpc.resource_id, lambda: ec2.delete_vpc(VpcId=vpc.resource_id))

    return warnings


def _owned(resource: Owned | None) -> Created | None:
    """Return the resource only when this tool created it."""
    return resource if isinstance(resource, Created) else None


def _run_step(
    name: str,
    resource: str,
    action: Callable[[], Any],
    retry_delay_seconds: int,
) -> DeletionWarning | None:
    """Run one delete call, retrying while dependents are still going away."""
    for attempt in range(DEPENDENCY_ATTEMPTS):
        try:
            action()
            return None
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in MISSING_CODES:
                logger.info(f"{name}: {resource} already gone")
                return None
            if code == "DependencyViolation" and attempt + 1 < DEPENDENCY_ATTEMPTS:
                logger.info(f"{name}: {resource} still has dependents, retrying")
                time.sleep(retry_delay_seconds)
                continue
            return DeletionWarning("DeleteNetwork", resource, f"{name} failed: {exc}")
    return None
