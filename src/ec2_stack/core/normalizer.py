"""Validation and normalization of stack documents."""

import ipaddress
import logging
import re
import secrets
import string
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ec2_stack.core.deployments.aws_ec2.images import OS_PARAMETER_PATHS, supported_os
from ec2_stack.core.errors import ValidationError
from ec2_stack.core.models import DnsConfig, StackConfig, User, VmConfig
from ec2_stack.core.settings import StackDefaults
from ec2_stack.core.userdata import MAX_ENCODED_USERS_LENGTH, encode_users

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]{0,31}$")
GITHUB_USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,38})$")
HOSTNAME_LENGTH = 8
HOSTNAME_ALPHABET = string.ascii_lowercase + string.digits

_LEGACY_VM_FIELDS = (
    "region",
    "os",
    "instance_type",
    "github_username",
    "users",
    "cloud_init_file",
    "vpc_id",
    "subnet_id",
    "stack_name",
    "stack_id",
    "ami_id",
    "instance_id",
    "public_ip",
    "security_group",
    "ssh_command",
)
_LEGACY_DNS_FIELDS = (
    "hostname",
    "domain",
    "ttl",
    "is_apex_domain",
    "cname_aliases",
    "zone_id",
    "fqdn",
)
_LEGACY_NETWORK_MARKERS = (
    "created_vpc",
    "created_subnet",
    "internet_gateway_id",
    "route_table_id",
    "route_table_association_id",
)


def normalize_config(raw: dict[str, Any], defaults: StackDefaults) -> StackConfig:
    """Validate a raw stack document and return the normalized config.

    Args:
        raw: Parsed JSON document, nested or legacy flat shape.
        defaults: Defaults applied to unset fields.

    Returns:
        The normalized stack configuration.
    """
    config = parse_config(raw, defaults)
    if config.vm is None and config.dns is None:
        raise ValidationError("vm", "either a 'vm' or a 'dns' section is required")

    if config.vm is not None:
        _validate_vm(config.vm)
    if config.dns is not None:
        _validate_dns(config.dns, dns_only=config.vm is None)
    return config


def parse_config(raw: dict[str, Any], defaults: StackDefaults) -> StackConfig:
    """Parse a stack document and apply defaults without validating its rules.

    Teardown and status read stack files this way, so that input fields
    edited after creation cannot block them.
    """
    document = raw if is_nested(raw) else convert_legacy(raw)
    try:
        config = StackConfig.model_validate(document)
    except PydanticValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        raise ValidationError(field, error["msg"]) from exc

    if config.vm is not None:
        _apply_vm_defaults(config.vm, defaults)
    if config.dns is not None:
        _apply_dns_defaults(config.dns, defaults)
    return config


def is_nested(raw: dict[str, Any]) -> bool:
    """Return true when the document uses the ``vm``/``dns`` sections."""
    return "vm" in raw or "dns" in raw


def convert_legacy(raw: dict[str, Any]) -> dict[str, Any]:
    """Convert the flat legacy document into the nested shape.

    The flat shape always described an instance, so the result always has a
    ``vm`` section. A ``dns`` section is only produced when DNS fields are set.
    """
    logger.debug("Converting legacy flat stack document")
    vm = {key: raw[key] for key in _LEGACY_VM_FIELDS if key in raw}

    if any(key in raw for key in _LEGACY_NETWORK_MARKERS):
        created_vpc = bool(raw.get("created_vpc"))
        created_subnet = bool(raw.get("created_subnet"))
        vm["network"] = {
            "vpc_id": raw.get("vpc_id") or None,
            "created_vpc": created_vpc,
            "subnet_id": raw.get("subnet_id") or None,
            "created_subnet": created_subnet,
            "internet_gateway_id": raw.get("internet_gateway_id") or None,
            # The flat format only ever recorded gateways it had created.
            "created_internet_gateway": bool(raw.get("internet_gateway_id")),
            "route_table_id": raw.get("route_table_id") or None,
            "route_table_association_id": raw.get("route_table_association_id") or None,
        }
        if created_vpc:
            vm.pop("vpc_id", None)
        if created_subnet:
            vm.pop("subnet_id", None)

    document: dict[str, Any] = {"vm": vm}
    dns = {key: raw[key] for key in _LEGACY_DNS_FIELDS if key in raw}
    if "dns_records" in raw:
        dns["records"] = raw["dns_records"] or []
    if any(raw.get(key) for key in ("hostname", "domain", "is_apex_domain", "cname_aliases")):
        document["dns"] = dns
    return document


def ensure_hostname(config: StackConfig) -> str | None:
    """Generate a random hostname when a domain is set without one.

    The caller must persist the config straight away so the generated name
    survives a failure in the next step.

    Returns:
        The generated hostname, or None when nothing was generated.
    """
    dns = config.dns
    if dns is None or dns.hostname or not dns.domain:
        return None
    dns.hostname = generate_hostname()
    logger.info(f"Generated hostname {dns.hostname} for {dns.domain}")
    return dns.hostname


def generate_hostname(length: int = HOSTNAME_LENGTH) -> str:
    """Return a random lowercase alphanumeric label."""
    return "".join(secrets.choice(HOSTNAME_ALPHABET) for _ in range(length))


def _apply_vm_defaults(vm: VmConfig, defaults: StackDefaults) -> None:
    if not vm.region:
        vm.region = defaults.region
    if not vm.os:
        vm.os = defaults.os
    if not vm.instance_type:
        vm.instance_type = defaults.instance_type
    if not vm.users and vm.github_username:
        vm.users = [User(username=vm.github_username, github_username=vm.github_username)]


def _apply_dns_defaults(dns: DnsConfig, defaults: StackDefaults) -> None:
    if dns.ttl == 0:
        dns.ttl = defaults.ttl
    dns.domain = dns.domain.strip().rstrip(".").lower()
    dns.hostname = dns.hostname.strip().lower()
    dns.cname_aliases = [alias.strip().lower() for alias in dns.cname_aliases]


def _validate_vm(vm: VmConfig) -> None:
    if not vm.users:
        raise ValidationError(
            "vm.users", "at least one user required: specify 'github_username' or 'users'"
        )

    seen: set[str] = set()
    for index, user in enumerate(vm.users):
        field = f"vm.users[{index}]"
        if not user.username:
            raise ValidationError(f"{field}.username", "username cannot be empty")
        if not user.github_username:
            raise ValidationError(f"{field}.github_username", "github_username cannot be empty")
        if user.username in seen:
            raise ValidationError(f"{field}.username", f"duplicate username: {user.username}")
        seen.add(user.username)
        if not USERNAME_PATTERN.match(user.username):
            raise ValidationError(
                f"{field}.username",
                f"invalid username format: {user.username} "
                "(must be lowercase alphanumeric, start with letter, at most 32 characters)",
            )
        if not GITHUB_USERNAME_PATTERN.match(user.github_username):
            raise ValidationError(
                f"{field}.github_username",
                f"invalid GitHub username: {user.github_username}",
            )

    encoded_length = len(encode_users(vm.users))
    if encoded_length > MAX_ENCODED_USERS_LENGTH:
        raise ValidationError(
            "vm.users",
            f"too many users: encoded list is {encoded_length} characters, "
            f"at most {MAX_ENCODED_USERS_LENGTH} allowed",
        )

    if vm.os not in OS_PARAMETER_PATHS:
        raise ValidationError(
            "vm.os", f"unsupported OS {vm.os!r}, supported: {', '.join(supported_os())}"
        )


def _validate_dns(dns: DnsConfig, dns_only: bool) -> None:
    if dns.ttl < 0:
        raise ValidationError("dns.ttl", "ttl must be a positive number of seconds")

    if dns.cname_aliases:
        if not dns.hostname or not dns.domain:
            raise ValidationError(
                "dns.cname_aliases", "cname_aliases requires both hostname and domain"
            )
        seen: set[str] = set()
        for alias in dns.cname_aliases:
            if not alias:
                raise ValidationError(
                    "dns.cname_aliases", "cname_aliases cannot contain empty strings"
                )
            if alias == dns.hostname:
                raise ValidationError(
                    "dns.cname_aliases",
                    f"cname_aliases cannot duplicate primary hostname: {alias}",
                )
            if alias in seen:
                raise ValidationError("dns.cname_aliases", f"duplicate cname_alias: {alias}")
            seen.add(alias)

    if dns.is_apex_domain and not dns.domain:
        raise ValidationError(
            "dns.is_apex_domain", "is_apex_domain requires domain to be specified"
        )

    if dns_only:
        if not dns.target_ip:
            raise ValidationError(
                "dns.target_ip", "target_ip is required when no vm section is given"
            )
        try:
            ipaddress.IPv4Address(dns.target_ip)
        except ValueError as exc:
            raise ValidationError(
                "dns.target_ip", f"not an IPv4 address: {dns.target_ip}"
            ) from exc
