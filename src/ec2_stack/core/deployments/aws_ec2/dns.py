"""Route 53 record management for EC2 stacks."""

import logging
from collections.abc import Callable
from typing import Any

from botocore.exceptions import ClientError

from ec2_stack.core.deployments.aws_ec2.models import HostedZone
from ec2_stack.core.errors import DeletionWarning, ProvisioningError, ResourceLookupError
from ec2_stack.core.models import DnsConfig, DnsRecord

logger = logging.getLogger(__name__)

HOSTED_ZONE_PREFIX = "/hostedzone/"


def lookup_zone(session: Any, domain: str, hosted_zone_id: str = "") -> HostedZone:
    """Resolve the hosted zone for a domain.

    An explicit ``hosted_zone_id`` wins. Otherwise exactly one zone must
    carry the domain name; several public/private zones with the same name
    have to be disambiguated with ``hosted_zone_id``.
    """
    route53 = session.client("route53")
    zone_name = _fqdn(domain)

    if hosted_zone_id:
        try:
            response = route53.get_hosted_zone(Id=hosted_zone_id)
        except ClientError as exc:
            raise ResourceLookupError(
                f"Failed to read hosted zone {hosted_zone_id}: {exc}"
            ) from exc
        zone = response["HostedZone"]
        if zone["Name"] != zone_name:
            raise ResourceLookupError(
                f"Hosted zone {hosted_zone_id} serves {zone['Name']}, not {zone_name}"
            )
        return HostedZone(zone_id=_strip_zone_prefix(zone["Id"]), name=zone["Name"])

    try:
        response = route53.list_hosted_zones_by_name(DNSName=zone_name)
    except ClientError as exc:
        raise ResourceLookupError(f"Failed to list hosted zones: {exc}") from exc

    matches = [zone for zone in response.get("HostedZones", []) if zone["Name"] == zone_name]
    if not matches:
        raise ResourceLookupError(f"Hosted zone not found for domain: {zone_name}")
    if len(matches) > 1:
        zone_ids = ", ".join(_strip_zone_prefix(zone["Id"]) for zone in matches)
        raise ResourceLookupError(
            f"Several hosted zones named {zone_name} ({zone_ids}). "
            "Set dns.hosted_zone_id to pick one."
        )
    return HostedZone(zone_id=_strip_zone_prefix(matches[0]["Id"]), name=zone_name)


def build_record_plan(dns: DnsConfig, target_ip: str) -> list[DnsRecord]:
    """Return the records to apply, in order: primary, aliases, apex."""
    if not dns.domain:
        return []

    plan: list[DnsRecord] = []
    primary = dns.primary_fqdn
    if primary:
        plan.append(DnsRecord(name=primary, type="A", value=target_ip, ttl=dns.ttl))
        for alias in dns.cname_aliases:
            plan.append(
                DnsRecord(name=f"{alias}.{dns.domain}", type="CNAME", value=primary, ttl=dns.ttl)
            )
    if dns.is_apex_domain:
        plan.append(DnsRecord(name=dns.domain, type="A", value=target_ip, ttl=dns.ttl))
    return plan


def apply_records(
    session: Any,
    zone_id: str,
    plan: list[DnsRecord],
    reporter: Callable[[str], None],
    existing: list[DnsRecord] | None = None,
) -> list[DnsRecord]:
    """Upsert each record of the plan in order.

    When a record fails, the records applied earlier in this call are
    deleted again and the error is raised. Records listed in ``existing``
    were persisted by an earlier run and are left in place.

    Returns:
        The applied records, identical to the plan on success.
    """
    route53 = session.client("route53")
    persisted = {_record_identity(record) for record in existing or []}
    applied: list[DnsRecord] = []
    for record in plan:
        reporter(f"Upserting {record.type} record {record.name} -> {record.value}")
        try:
            _change_record(route53, zone_id, "UPSERT", record)
        except ClientError as exc:
            created = [item for item in applied if _record_identity(item) not in persisted]
            _rollback(route53, zone_id, created, reporter)
            raise ProvisioningError(
                f"Failed to create {record.type} record {record.name}: {exc}"
            ) from exc
        applied.append(record)
    return applied


def delete_records(
    session: Any,
    zone_id: str,
    records: list[DnsRecord],
    reporter: Callable[[str], None],
) -> list[DeletionWarning]:
    """Delete records exactly as they were persisted.

    Returns:
        One warning per record that could not be deleted.
    """
    route53 = session.client("route53")
    warnings: list[DeletionWarning] = []
    for record in records:
        reporter(f"Deleting {record.type} record {record.name} -> {record.value}")
        try:
            _change_record(route53, zone_id, "DELETE", record)
        except ClientError as exc:
            if _is_missing_record(exc):
                logger.info(f"Record {record.name} ({record.type}) already absent")
                continue
            warning = DeletionWarning("DeleteDNS", f"{record.type} record {record.name}", str(exc))
            logger.warning(str(warning))
            reporter(f"Warning: {warning}")
            warnings.append(warning)
    return warnings


def record_exists(session: Any, zone_id: str, record: DnsRecord) -> bool:
    """Return true when the zone holds the record with the same value."""
    route53 = session.client("route53")
    response = route53.list_resource_record_sets(
        HostedZoneId=zone_id,
        StartRecordName=_fqdn(record.name),
        StartRecordType=record.type,
        MaxItems="1",
    )
    for record_set in response.get("ResourceRecordSets", []):
        if record_set["Name"] != _fqdn(record.name) or record_set["Type"] != record.type:
            continue
        values = {item["Value"] for item in record_set.get("ResourceRecords", [])}
        return _record_value(record) in values
    return False


def _rollback(
    route53: Any,
    zone_id: str,
    applied: list[DnsRecord],
    reporter: Callable[[str], None],
) -> None:
    """Best-effort removal of records applied in the current call."""
    for record in applied:
        reporter(f"Rolling back {record.type} record {record.name}")
        try:
            _change_record(route53, zone_id, "DELETE", record)
        except ClientError as exc:
            logger.warning(f"Failed to roll back {record.type} record {record.name}: {exc}")


def _change_record(route53: Any, zone_id: str, action: str, record: DnsRecord) -> None:
    """Submit a single-record change batch."""
    route53.change_resource_record_sets(
        HostedZoneId=zone_id,
        ChangeBatch={
            "Changes": [
                {
                    "Action": action,
                    "ResourceRecordSet": {
                        "Name": _fqdn(record.name),
                        "Type": record.type,
                        "TTL": record.ttl,
                        "ResourceRecords": [{"Value": _record_value(record)}],
                    },
                }
            ]
        },
    )


def _record_identity(record: DnsRecord) -> tuple[str, str, str, int]:
    return _fqdn(record.name), record.type, _record_value(record), record.ttl


def _record_value(record: DnsRecord) -> str:
    if record.type == "CNAME":
        return _fqdn(record.value)
    return record.value


def _is_missing_record(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    return error.get("Code") == "InvalidChangeBatch" and "not found" in str(
        error.get("Message", "")
    )


def _fqdn(name: str) -> str:
    return name if name.endswith(".") else f"{name}."


def _strip_zone_prefix(zone_id: str) -> str:
    return zone_id.removeprefix(HOSTED_ZONE_PREFIX)
