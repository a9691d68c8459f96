"""VPC and subnet discovery or creation for EC2 stacks."""

import ipaddress
import logging
from collections.abc import Callable
from dataclasses import replace
from typing import Any, cast

from botocore.exceptions import ClientError, WaiterError

from ec2_stack.core.deployments.aws_ec2.models import Created, Discovered, NetworkResources
from ec2_stack.core.errors import NetworkProvisioningError, ProvisioningError

logger = logging.getLogger(__name__)

MANAGED_BY = "ec2-stack"
VPC_CIDR_BLOCK = "10.0.0.0/16"
DEFAULT_ROUTE = "0.0.0.0/0"


def resolve_network(
    session: Any,
    stack_name: str,
    reporter: Callable[[str], None],
    vpc_id: str = "",
    subnet_id: str = "",
    previous: NetworkResources | None = None,
) -> NetworkResources:
    """Find or create a network and a public subnet for the instance.

    Explicit IDs win, then previously persisted resources, then discovery.
    New resources are only created when nothing suitable exists. On failure
    the resources created so far are attached to the raised error.

    Args:
        session: boto3 session.
        stack_name: Stack name used for resource tags.
        reporter: Progress callback.
        vpc_id: VPC ID supplied in the stack document.
        subnet_id: Subnet ID supplied in the stack document.
        previous: Network resolved by an earlier run of the same stack.

    Returns:
        The resolved network resources with ownership variants.
    """
    resources = replace(previous) if previous else NetworkResources()
    if not resources.routing_complete():
        raise ProvisioningError(
            f"Subnet {resources.subnet_id} was created without complete routing by an earlier "
            "run. Delete the stack before creating it again."
        )

    ec2 = session.client("ec2")
    try:
        if resources.vpc is None:
            _resolve_vpc(ec2, resources, stack_name, vpc_id, reporter)
        if resources.subnet is None:
            _resolve_subnet(ec2, resources, stack_name, subnet_id, reporter)
    except (ClientError, WaiterError) as exc:
        raise NetworkProvisioningError(f"Failed to set up network: {exc}", resources) from exc
    except ProvisioningError as exc:
        raise NetworkProvisioningError(str(exc), resources) from exc

    return resources


def _resolve_vpc(
    ec2: Any,
    resources: NetworkResources,
    stack_name: str,
    vpc_id: str,
    reporter: Callable[[str], None],
) -> None:
    """Use the given VPC, the default VPC, any VPC, or create one."""
    if vpc_id:
        reporter(f"Using configured VPC {vpc_id}")
        resources.vpc = Discovered(vpc_id)
        return

    reporter("Discovering VPC")
    discovered = _discover_vpc(ec2)
    if discovered:
        reporter(f"Using existing VPC {discovered}")
        resources.vpc = Discovered(discovered)
        return

    reporter("No VPC found, creating one")
    created = ec2.create_vpc(CidrBlock=VPC_CIDR_BLOCK)["Vpc"]["VpcId"]
    resources.vpc = Created(created)
    reporter(f"Created VPC {created}")
    ec2.get_waiter("vpc_available").wait(VpcIds=[created])
    _tag_resource(ec2, created, f"{stack_name}-vpc")
    ec2.modify_vpc_attribute(VpcId=created, EnableDnsHostnames={"Value": True})


def _discover_vpc(ec2: Any) -> str | None:
    """Return the default VPC, else the first VPC, else None."""
    response = ec2.describe_vpcs(Filters=[{"Name": "is-default", "Values": ["true"]}])
    vpcs = response.get("Vpcs", [])
    if vpcs:
        return cast(str, vpcs[0]["VpcId"])

    vpcs = ec2.describe_vpcs().get("Vpcs", [])
    if vpcs:
        return cast(str, vpcs[0]["VpcId"])
    return None


def _resolve_subnet(
    ec2: Any,
    resources: NetworkResources,
    stack_name: str,
    subnet_id: str,
    reporter: Callable[[str], None],
) -> None:
    """Use the given subnet, discover one, or create a routed public subnet."""
    if subnet_id:
        reporter(f"Using configured subnet {subnet_id}")
        resources.subnet = Discovered(subnet_id)
        return

    vpc_id = cast(str, resources.vpc_id)
    reporter("Discovering subnet")
    discovered = _discover_subnet(ec2, vpc_id)
    if discovered:
        reporter(f"Using existing subnet {discovered}")
        resources.subnet = Discovered(discovered)
        return

    reporter(f"No subnet found in {vpc_id}, creating a public subnet")
    _create_public_subnet(ec2, resources, stack_name, reporter)


def _discover_subnet(ec2: Any, vpc_id: str) -> str | None:
    """Prefer a subnet that auto-assigns public IPs, else the first one."""
    response = ec2.describe_subnets(Filters=[{"Name": "vpc-id", "Values": [vpc_id]}])
    subnets = response.get("Subnets", [])
    if not subnets:
        return None

    for subnet in subnets:
        if subnet.get("MapPublicIpOnLaunch"):
            return cast(str, subnet["SubnetId"])
    return cast(str, subnets[0]["SubnetId"])


def _create_public_subnet(
    ec2: Any,
    resources: NetworkResources,
    stack_name: str,
    reporter: Callable[[str], None],
) -> None:
    """Create a subnet with a default route through an internet gateway.

    Each identifier is recorded on ``resources`` as soon as it exists.
    """
    vpc_id = cast(str, resources.vpc_id)
    availability_zone = _first_availability_zone(ec2)
    cidr_block = _subnet_cidr(_vpc_cidr(ec2, vpc_id))

    created_subnet = ec2.create_subnet(
        VpcId=vpc_id,
        CidrBlock=cidr_block,
        AvailabilityZone=availability_zone,
    )["Subnet"]["SubnetId"]
    resources.subnet = Created(created_subnet)
    reporter(f"Created subnet {created_subnet} in {availability_zone}")
    _tag_resource(ec2, created_subnet, f"{stack_name}-public-subnet")
    ec2.modify_subnet_attribute(SubnetId=created_subnet, MapPublicIpOnLaunch={"Value": True})

    attached = _attached_internet_gateway(ec2, vpc_id)
    if attached:
        reporter(f"Reusing internet gateway {attached}")
        resources.internet_gateway = Discovered(attached)
    else:
        igw_id = ec2.create_internet_gateway()["InternetGateway"]["InternetGatewayId"]
        resources.internet_gateway = Created(igw_id)
        _tag_resource(ec2, igw_id, f"{stack_name}-igw")
        ec2.attach_internet_gateway(InternetGatewayId=igw_id, VpcId=vpc_id)
        reporter(f"Created and attached internet gateway {igw_id}")
    gateway_id = resources.internet_gateway.resource_id

    route_table_id = ec2.create_route_table(VpcId=vpc_id)["RouteTable"]["RouteTableId"]
    resources.route_table = Created(route_table_id)
    _tag_resource(ec2, route_table_id, f"{stack_name}-public-rt")
    ec2.create_route(
        RouteTableId=route_table_id,
        DestinationCidrBlock=DEFAULT_ROUTE,
        GatewayId=gateway_id,
    )
    reporter(f"Created route table {route_table_id} with default route to {gateway_id}")

    association_id = ec2.associate_route_table(
        RouteTableId=route_table_id,
        SubnetId=created_subnet,
    )["AssociationId"]
    resources.route_table_association = Created(association_id)
    reporter("Associated route table with subnet")


def _attached_internet_gateway(ec2: Any, vpc_id: str) -> str | None:
    """Return an internet gateway already attached to the VPC."""
    response = ec2.describe_internet_gateways(
        Filters=[{"Name": "attachment.vpc-id", "Values": [vpc_id]}]
    )
    gateways = response.get("InternetGateways", [])
    if not gateways:
        return None
    return cast(str, gateways[0]["InternetGatewayId"])


def _vpc_cidr(ec2: Any, vpc_id: str) -> str:
    """Return the primary CIDR block of a VPC."""
    vpcs = ec2.describe_vpcs(VpcIds=[vpc_id]).get("Vpcs", [])
    if not vpcs:
        raise ProvisioningError(f"VPC {vpc_id} not found.")
    return cast(str, vpcs[0].get("CidrBlock", VPC_CIDR_BLOCK))


def _subnet_cidr(vpc_cidr: str) -> str:
    """Pick a /24 inside the VPC block, skipping the first one."""
    network = ipaddress.ip_network(vpc_cidr)
    if network.prefixlen >= 24:
        return str(network)
    candidates = network.subnets(new_prefix=24)
    first = next(candidates)
    return str(next(candidates, first))


def _tag_resource(ec2: Any, resource_id: str, name: str) -> None:
    """Apply Name and ManagedBy tags to a resource."""
    ec2.create_tags(
        Resources=[resource_id],
        Tags=[
            {"Key": "Name", "Value": name},
            {"Key": "ManagedBy", "Value": MANAGED_BY},
        ],
    )


def _first_availability_zone(ec2: Any) -> str:
    """Fetch the first available availability zone."""
    response = ec2.describe_availability_zones(
        Filters=[{"Name": "state", "Values": ["available"]}]
    )
    zones = response.get("AvailabilityZones", [])
    if not zones:
        raise ProvisioningError("No availability zones found for this region.")
    logger.debug(f"Using availability zone {zones[0]['ZoneName']}")
    return str(zones[0]["ZoneName"])
