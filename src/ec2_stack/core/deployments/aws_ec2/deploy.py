"""Create and delete entrypoints for EC2 stacks."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from ec2_stack.core.deployments.aws_ec2.cleanup import TeardownReport, teardown_stack
from ec2_stack.core.deployments.aws_ec2.compute import create_compute_stack
from ec2_stack.core.deployments.aws_ec2.dns import apply_records, build_record_plan, lookup_zone
from ec2_stack.core.deployments.aws_ec2.images import lookup_image
from ec2_stack.core.deployments.aws_ec2.models import HostedZone, NetworkResources
from ec2_stack.core.deployments.aws_ec2.network import resolve_network
from ec2_stack.core.deployments.aws_ec2.session import create_session, get_identity
from ec2_stack.core.errors import NetworkProvisioningError, ProvisioningError
from ec2_stack.core.models import DnsConfig, DnsRecord, StackConfig, VmConfig
from ec2_stack.core.normalizer import ensure_hostname
from ec2_stack.core.settings import StackDefaults
from ec2_stack.core.userdata import (
    build_user_data,
    encode_users,
    render_cloud_init,
    render_user_script,
)

logger = logging.getLogger(__name__)

Persist = Callable[[StackConfig], None]


def create_stack(
    config: StackConfig,
    stack_name: str,
    defaults: StackDefaults,
    persist: Persist,
    reporter: Callable[[str], None],
    session: Any | None = None,
    config_dir: Path | None = None,
) -> StackConfig:
    """Create every resource of a stack, persisting after each step.

    Args:
        config: Normalized stack configuration, updated in place.
        stack_name: Name of the stack, also used for the compute stack.
        defaults: Process-wide defaults.
        persist: Callback writing the config to durable storage.
        reporter: Progress callback.
        session: boto3 session. Created from the config when omitted.
        config_dir: Directory that relative template paths resolve against.

    Returns:
        The updated configuration.
    """
    generated = ensure_hostname(config)
    if generated:
        reporter(f"Generated hostname {generated}")
        persist(config)

    if session is None:
        session = create_session(_region(config, defaults), defaults.aws_profile)
    identity = get_identity(session)
    reporter(f"Using AWS account {identity['Account']} ({identity['Arn']})")

    zone: HostedZone | None = None
    if config.dns is not None and config.dns.domain:
        reporter(f"Looking up hosted zone for {config.dns.domain}")
        zone = lookup_zone(session, config.dns.domain, config.dns.hosted_zone_id)
        reporter(f"Using hosted zone {zone.zone_id}")

    if config.vm is not None:
        target_ip = _create_instance(
            config, config.vm, stack_name, defaults, persist, reporter, session, config_dir
        )
    else:
        target_ip = config.dns.target_ip if config.dns else ""
        reporter(f"No vm section, pointing DNS at {target_ip}")

    if config.dns is not None and zone is not None:
        _apply_dns(config.dns, zone, target_ip, reporter, session)
        persist(config)

    if config.vm is not None:
        host = config.dns.fqdn if config.dns and config.dns.fqdn else target_ip
        config.vm.ssh_command = f"ssh {config.vm.users[0].username}@{host}"
        persist(config)
        reporter(f"Connect with: {config.vm.ssh_command}")

    return config


def destroy_stack(
    config: StackConfig | None,
    stack_name: str,
    defaults: StackDefaults,
    persist: Persist,
    reporter: Callable[[str], None],
    session: Any | None = None,
) -> TeardownReport:
    """Delete a stack and persist the cleared configuration.

    Without a configuration only the compute stack is deleted, in the
    default region.
    """
    if session is None:
        session = create_session(_region(config, defaults), defaults.aws_profile)

    report = teardown_stack(
        session,
        config,
        stack_name,
        reporter,
        timeout_seconds=defaults.stack_timeout_seconds,
        poll_interval_seconds=defaults.poll_interval_seconds,
    )
    if config is not None:
        persist(config)
    return report


def _create_instance(
    config: StackConfig,
    vm: VmConfig,
    stack_name: str,
    defaults: StackDefaults,
    persist: Persist,
    reporter: Callable[[str], None],
    session: Any,
    config_dir: Path | None,
) -> str:
    """Resolve the network and run the compute stack. Returns the public IP."""
    previous = NetworkResources.from_state(vm.network) if vm.network else None
    try:
        network = resolve_network(
            session,
            stack_name,
            reporter,
            vpc_id=vm.vpc_id,
            subnet_id=vm.subnet_id,
            previous=previous,
        )
    except NetworkProvisioningError as exc:
        vm.network = exc.partial.to_state()
        persist(config)
        raise
    vm.network = network.to_state()
    persist(config)

    reporter(f"Looking up image for {vm.os}")
    vm.ami_id = lookup_image(session, vm.os)
    vm.stack_name = stack_name
    reporter(f"Using image {vm.ami_id}")

    user_data = build_user_data(
        render_user_script(vm.users), _cloud_config(config, vm, config_dir)
    )
    outputs = create_compute_stack(
        session,
        stack_name,
        image_id=vm.ami_id,
        instance_type=vm.instance_type,
        user_data=user_data,
        users=encode_users(vm.users),
        network=network,
        reporter=reporter,
        timeout_seconds=defaults.stack_timeout_seconds,
        poll_interval_seconds=defaults.poll_interval_seconds,
    )
    vm.stack_id = outputs.stack_id
    vm.instance_id = outputs.instance_id
    vm.public_ip = outputs.public_ip
    vm.security_group = outputs.security_group_id
    persist(config)
    reporter(f"Instance {outputs.instance_id} is running at {outputs.public_ip}")

    if not outputs.public_ip:
        raise ProvisioningError(f"Stack {stack_name} did not report a public IP address.")
    return outputs.public_ip


def _cloud_config(config: StackConfig, vm: VmConfig, config_dir: Path | None) -> str:
    if not vm.cloud_init_file:
        return ""
    path = Path(vm.cloud_init_file)
    if not path.is_absolute() and config_dir is not None:
        path = config_dir / path

    dns = config.dns
    context = {
        "hostname": dns.hostname if dns else "",
        "domain": dns.domain if dns else "",
        "fqdn": (dns.primary_fqdn or dns.domain) if dns else "",
        "region": vm.region,
        "os": vm.os,
        "users": [user.model_dump() for user in vm.users],
    }
    logger.debug(f"Rendering cloud-init template {path}")
    return render_cloud_init(path, context)


def _apply_dns(
    dns: DnsConfig,
    zone: HostedZone,
    target_ip: str,
    reporter: Callable[[str], None],
    session: Any,
) -> None:
    plan = build_record_plan(dns, target_ip)
    applied = apply_records(session, zone.zone_id, plan, reporter, existing=dns.records)

    # Records from an earlier run that left the plan stay listed for delete.
    keys = {_record_key(record) for record in applied}
    stale = [record for record in dns.records if _record_key(record) not in keys]
    dns.zone_id = zone.zone_id
    dns.records = applied + stale
    dns.fqdn = dns.primary_fqdn or (dns.domain if dns.is_apex_domain else None)
    reporter(f"Applied {len(applied)} DNS record(s) in zone {zone.zone_id}")


def _record_key(record: DnsRecord) -> tuple[str, str]:
    return record.name, record.type


def _region(config: StackConfig | None, defaults: StackDefaults) -> str:
    if config is not None and config.vm is not None and config.vm.region:
        return config.vm.region
    return defaults.region
