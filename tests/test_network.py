"""Tests for network discovery and creation."""

import pytest

from ec2_stack.core.deployments.aws_ec2.models import Created, Discovered, NetworkResources
from ec2_stack.core.deployments.aws_ec2.network import _subnet_cidr, resolve_network
from ec2_stack.core.errors import NetworkProvisioningError, ProvisioningError
from tests.fakes import FakeSession, client_error, noop_reporter

CREATE_OPERATIONS = {
    "create_vpc",
    "create_subnet",
    "create_internet_gateway",
    "create_route_table",
    "associate_route_table",
}


def test_configured_ids_are_used_as_discovered(session: FakeSession) -> None:
    network = resolve_network(
        session, "web", noop_reporter, vpc_id="vpc-given", subnet_id="subnet-given"
    )

    assert network.vpc == Discovered("vpc-given")
    assert network.subnet == Discovered("subnet-given")
    assert session.ec2.operations() == []


def test_default_vpc_and_public_subnet_are_discovered(session: FakeSession) -> None:
    session.ec2.add_vpc("vpc-other")
    session.ec2.add_vpc("vpc-default", default=True)
    session.ec2.add_subnet("subnet-private", "vpc-default")
    session.ec2.add_subnet("subnet-public", "vpc-default", public=True)

    network = resolve_network(session, "web", noop_reporter)

    assert network.vpc == Discovered("vpc-default")
    assert network.subnet == Discovered("subnet-public")
    assert not CREATE_OPERATIONS & set(session.ec2.operations())


def test_first_subnet_is_used_when_none_is_public(session: FakeSession) -> None:
    session.ec2.add_vpc("vpc-1")
    session.ec2.add_subnet("subnet-a", "vpc-1")
    session.ec2.add_subnet("subnet-b", "vpc-1")

    network = resolve_network(session, "web", noop_reporter)

    assert network.vpc == Discovered("vpc-1")
    assert network.subnet == Discovered("subnet-a")


def test_empty_account_gets_a_routed_public_subnet(session: FakeSession) -> None:
    network = resolve_network(session, "web", noop_reporter)

    assert network.vpc == Created("vpc-new")
    assert network.subnet == Created("subnet-new")
    assert network.internet_gateway == Created("igw-new")
    assert network.route_table == Created("rtb-new")
    assert network.route_table_association == Created("rtbassoc-new")
    assert network.routing_complete()

    operations = [op for op in session.ec2.operations() if op in CREATE_OPERATIONS]
    assert operations == [
        "create_vpc",
        "create_subnet",
        "create_internet_gateway",
        "create_route_table",
        "associate_route_table",
    ]
    subnet_call = next(call for call in session.calls if call.operation == "create_subnet")
    assert subnet_call.kwargs["CidrBlock"] == "10.0.1.0/24"
    assert subnet_call.kwargs["AvailabilityZone"] == "us-east-1a"
    route_call = next(call for call in session.calls if call.operation == "create_route")
    assert route_call.kwargs["DestinationCidrBlock"] == "0.0.0.0/0"
    assert route_call.kwargs["GatewayId"] == "igw-new"


def test_created_resources_are_tagged(session: FakeSession) -> None:
    resolve_network(session, "web", noop_reporter)

    names = {
        tag["Value"]
        for call in session.calls
        if call.operation == "create_tags"
        for tag in call.kwargs["Tags"]
        if tag["Key"] == "Name"
    }
    assert names == {"web-vpc", "web-public-subnet", "web-igw", "web-public-rt"}


def test_attached_gateway_is_reused_as_discovered(session: FakeSession) -> None:
    session.ec2.add_vpc("vpc-1", default=True)
    session.ec2.add_internet_gateway("igw-existing", "vpc-1")

    network = resolve_network(session, "web", noop_reporter)

    assert network.subnet == Created("subnet-new")
    assert network.internet_gateway == Discovered("igw-existing")
    assert "create_internet_gateway" not in session.ec2.operations()
    subnet_call = next(call for call in session.calls if call.operation == "create_subnet")
    assert subnet_call.kwargs["CidrBlock"] == "172.31.1.0/24"


def test_partial_failure_carries_created_resources(session: FakeSession) -> None:
    session.ec2.errors["create_route_table"] = client_error("RouteTableLimitExceeded")

    with pytest.raises(NetworkProvisioningError) as excinfo:
        resolve_network(session, "web", noop_reporter)

    partial = excinfo.value.partial
    assert partial.vpc == Created("vpc-new")
    assert partial.subnet == Created("subnet-new")
    assert partial.internet_gateway == Created("igw-new")
    assert partial.route_table is None
    assert partial.route_table_association is None


def test_previous_network_is_reused_without_calls(session: FakeSession) -> None:
    previous = NetworkResources(vpc=Discovered("vpc-1"), subnet=Discovered("subnet-1"))

    network = resolve_network(session, "web", noop_reporter, previous=previous)

    assert network == previous
    assert network is not previous
    assert session.ec2.operations() == []


def test_previous_subnet_without_routing_is_rejected(session: FakeSession) -> None:
    previous = NetworkResources(vpc=Created("vpc-1"), subnet=Created("subnet-1"))

    with pytest.raises(ProvisioningError) as excinfo:
        resolve_network(session, "web", noop_reporter, previous=previous)

    assert not isinstance(excinfo.value, NetworkProvisioningError)
    assert session.ec2.operations() == []


def test_state_round_trip_keeps_ownership() -> None:
    network = NetworkResources(
        vpc=Discovered("vpc-1"),
        subnet=Created("subnet-1"),
        internet_gateway=Discovered("igw-1"),
        route_table=Created("rtb-1"),
        route_table_association=Created("rtbassoc-1"),
    )

    state = network.to_state()

    assert not state.created_vpc
    assert state.created_subnet
    assert not state.created_internet_gateway
    assert NetworkResources.from_state(state) == network


@pytest.mark.parametrize(
    ("vpc_cidr", "expected"),
    [
        ("10.0.0.0/16", "10.0.1.0/24"),
        ("172.31.0.0/16", "172.31.1.0/24"),
        ("10.1.2.0/24", "10.1.2.0/24"),
    ],
)
def test_subnet_cidr_skips_first_block(vpc_cidr: str, expected: str) -> None:
    assert _subnet_cidr(vpc_cidr) == expected
