"""Stack status checks for EC2 stacks."""

from boto3.session import Session
from botocore.exceptions import ClientError

from ec2_stack.core.deployments.aws_ec2.compute import describe_stack
from ec2_stack.core.deployments.aws_ec2.dns import record_exists
from ec2_stack.core.errors import ProvisioningError
from ec2_stack.core.models import DnsRecord, NetworkState, StackConfig


def check_stack(session: Session, config: StackConfig, stack_name: str) -> dict[str, str]:
    """Check whether the recorded stack resources still exist."""
    results: dict[str, str] = {}

    if config.vm is not None:
        network = config.vm.network or NetworkState()
        results["VPC"] = _owned_label(
            _check_vpc(session, network.vpc_id), network.vpc_id, network.created_vpc
        )
        results["Subnet"] = _owned_label(
            _check_subnet(session, network.subnet_id), network.subnet_id, network.created_subnet
        )
        results["Internet gateway"] = _owned_label(
            _check_internet_gateway(session, network.internet_gateway_id),
            network.internet_gateway_id,
            network.created_internet_gateway,
        )
        results["Compute stack"] = _check_compute_stack(session, stack_name)

    if config.dns is not None:
        if not config.dns.records:
            results["DNS records"] = "not set"
        for record in config.dns.records:
            results[f"{record.type} {record.name}"] = _check_record(
                session, config.dns.zone_id, record
            )

    return results


def _owned_label(status: str, resource_id: str | None, created: bool) -> str:
    if not resource_id or not status.startswith("present"):
        return status
    return f"{status} (created)" if created else f"{status} (existing)"


def _check_vpc(session: Session, vpc_id: str | None) -> str:
    if not vpc_id:
        return "not set"
    ec2 = session.client("ec2")
    try:
        response = ec2.describe_vpcs(VpcIds=[vpc_id])
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code == "InvalidVpcID.NotFound":
            return "missing"
        return f"error: {code}"
    vpcs = response.get("Vpcs", [])
    if not vpcs:
        return "missing"
    state = str(vpcs[0].get("State", "")).lower()
    if state and state != "available":
        return f"status {state}"
    return "present"


def _check_subnet(session: Session, subnet_id: str | None) -> str:
    if not subnet_id:
        return "not set"
    ec2 = session.client("ec2")
    try:
        response = ec2.describe_subnets(SubnetIds=[subnet_id])
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code == "InvalidSubnetID.NotFound":
            return "missing"
        return f"error: {code}"
    subnets = response.get("Subnets", [])
    if not subnets:
        return "missing"
    state = str(subnets[0].get("State", "")).lower()
    if state and state != "available":
        return f"status {state}"
    return "present"


def _check_internet_gateway(session: Session, gateway_id: str | None) -> str:
    if not gateway_id:
        return "not set"
    ec2 = session.client("ec2")
    try:
        response = ec2.describe_internet_gateways(InternetGatewayIds=[gateway_id])
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code == "InvalidInternetGatewayID.NotFound":
            return "missing"
        return f"error: {code}"
    if not response.get("InternetGateways"):
        return "missing"
    return "present"


def _check_compute_stack(session: Session, stack_name: str) -> str:
    cfn = session.client("cloudformation")
    try:
        stack = describe_stack(cfn, stack_name)
    except ProvisioningError as exc:
        cause = exc.__cause__
        if isinstance(cause, ClientError):
            return f"error: {cause.response.get('Error', {}).get('Code')}"
        return "error"
    if stack is None:
        return "missing"
    status = str(stack.get("StackStatus", ""))
    if status != "CREATE_COMPLETE":
        return f"status {status}"
    return "present"


def _check_record(session: Session, zone_id: str | None, record: DnsRecord) -> str:
    if not zone_id:
        return "not set"
    try:
        exists = record_exists(session, zone_id, record)
    except ClientError as exc:
        return f"error: {exc.response.get('Error', {}).get('Code')}"
    return "present" if exists else "missing"
