"""Models of the persisted stack document."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class User(BaseModel):
    """A login account created on the instance."""

    username: str = ""
    github_username: str = ""


class DnsRecord(BaseModel):
    """A single applied resource record."""

    name: str
    type: Literal["A", "CNAME"]
    value: str
    ttl: int


class NetworkState(BaseModel):
    """Persisted network identifiers and ownership flags."""

    vpc_id: str | None = None
    created_vpc: bool = False
    subnet_id: str | None = None
    created_subnet: bool = False
    internet_gateway_id: str | None = None
    created_internet_gateway: bool = False
    route_table_id: str | None = None
    route_table_association_id: str | None = None

    def is_empty(self) -> bool:
        """Return true when nothing has been resolved yet."""
        return not any(
            [
                self.vpc_id,
                self.subnet_id,
                self.internet_gateway_id,
                self.route_table_id,
                self.route_table_association_id,
            ]
        )


class VmConfig(BaseModel):
    """Compute section of a stack document."""

    model_config = ConfigDict(extra="ignore")

    # Input fields
    region: str = ""
    os: str = ""
    instance_type: str = ""
    github_username: str = ""
    users: list[User] = Field(default_factory=list)
    cloud_init_file: str = ""
    vpc_id: str = ""
    subnet_id: str = ""

    # Output fields
    stack_name: str | None = None
    stack_id: str | None = None
    ami_id: str | None = None
    instance_id: str | None = None
    public_ip: str | None = None
    security_group: str | None = None
    ssh_command: str | None = None
    network: NetworkState | None = None

    def clear_outputs(self) -> None:
        """Reset every output field, keeping the inputs."""
        self.stack_name = None
        self.stack_id = None
        self.ami_id = None
        self.instance_id = None
        self.public_ip = None
        self.security_group = None
        self.ssh_command = None
        self.network = None


class DnsConfig(BaseModel):
    """DNS section of a stack document."""

    model_config = ConfigDict(extra="ignore")

    # Input fields
    hostname: str = ""
    domain: str = ""
    ttl: int = 0
    is_apex_domain: bool = False
    cname_aliases: list[str] = Field(default_factory=list)
    target_ip: str = ""
    hosted_zone_id: str = ""

    # Output fields
    zone_id: str | None = None
    fqdn: str | None = None
    records: list[DnsRecord] = Field(default_factory=list)

    @property
    def primary_fqdn(self) -> str:
        """Return ``hostname.domain``, or an empty string without a hostname."""
        if not self.hostname or not self.domain:
            return ""
        return f"{self.hostname}.{self.domain}"

    def clear_outputs(self) -> None:
        """Reset every output field, keeping the inputs."""
        self.zone_id = None
        self.fqdn = None
        self.records = []


class StackConfig(BaseModel):
    """A normalized stack document, mutated in place by each step."""

    model_config = ConfigDict(extra="ignore")

    vm: VmConfig | None = None
    dns: DnsConfig | None = None

    @property
    def dns_only(self) -> bool:
        """Return true when no compute instance is managed."""
        return self.vm is None

    def has_resources(self) -> bool:
        """Return true when any output identifier is still recorded."""
        if self.vm is not None:
            network = self.vm.network
            if self.vm.stack_id or self.vm.instance_id or (network and not network.is_empty()):
                return True
        if self.dns is not None and (self.dns.records or self.dns.zone_id):
            return True
        return False

    def clear_outputs(self) -> None:
        """Reset all output fields in both sections."""
        if self.vm is not None:
            self.vm.clear_outputs()
        if self.dns is not None:
            self.dns.clear_outputs()
