"""Data models for EC2 stack deployment."""

from dataclasses import dataclass

from ec2_stack.core.models import NetworkState


@dataclass(frozen=True)
class Discovered:
    """A pre-existing resource. Never deleted by this tool."""

    resource_id: str


@dataclass(frozen=True)
class Created:
    """A resource created by this tool and owned by the stack."""

    resource_id: str


Owned = Discovered | Created


def ownership(resource_id: str | None, created: bool) -> Owned | None:
    """Wrap a persisted identifier in its ownership variant."""
    if not resource_id:
        return None
    return Created(resource_id) if created else Discovered(resource_id)


@dataclass
class NetworkResources:
    """Resolved network topology for one stack.

    Route table and association only exist when the subnet was created, so
    they are always ``Created``.
    """

    vpc: Owned | None = None
    subnet: Owned | None = None
    internet_gateway: Owned | None = None
    route_table: Created | None = None
    route_table_association: Created | None = None

    @property
    def vpc_id(self) -> str | None:
        return self.vpc.resource_id if self.vpc else None

    @property
    def subnet_id(self) -> str | None:
        return self.subnet.resource_id if self.subnet else None

    def routing_complete(self) -> bool:
        """Return true when a created subnet has its gateway route in place."""
        if not isinstance(self.subnet, Created):
            return True
        return (
            self.internet_gateway is not None
            and self.route_table is not None
            and self.route_table_association is not None
        )

    def to_state(self) -> NetworkState:
        """Convert to the persisted representation."""
        return NetworkState(
            vpc_id=self.vpc_id,
            created_vpc=isinstance(self.vpc, Created),
            subnet_id=self.subnet_id,
            created_subnet=isinstance(self.subnet, Created),
            internet_gateway_id=(
                self.internet_gateway.resource_id if self.internet_gateway else None
            ),
            created_internet_gateway=isinstance(self.internet_gateway, Created),
            route_table_id=self.route_table.resource_id if self.route_table else None,
            route_table_association_id=(
                self.route_table_association.resource_id if self.route_table_association else None
            ),
        )

    @classmethod
    def from_state(cls, state: NetworkState) -> "NetworkResources":
        """Rebuild the ownership variants from the persisted representation."""
        route_table = Created(state.route_table_id) if state.route_table_id else None
        association = (
            Created(state.route_table_association_id)
            if state.route_table_association_id
            else None
        )
        return cls(
            vpc=ownership(state.vpc_id, state.created_vpc),
            subnet=ownership(state.subnet_id, state.created_subnet),
            internet_gateway=ownership(
                state.internet_gateway_id, state.created_internet_gateway
            ),
            route_table=route_table,
            route_table_association=association,
        )


@dataclass
class ComputeOutputs:
    """Outputs read from a completed compute stack."""

    stack_id: str
    instance_id: str
    public_ip: str
    instance_type: str
    security_group_id: str


@dataclass
class HostedZone:
    """A resolved hosted zone."""

    zone_id: str
    name: str
