"""CloudFormation-backed compute stack for EC2 stacks."""

import logging
import time
from collections.abc import Callable
from typing import Any, cast

from botocore.exceptions import ClientError

from ec2_stack.core.deployments.aws_ec2.models import ComputeOutputs, NetworkResources
from ec2_stack.core.errors import ProvisioningError

logger = logging.getLogger(__name__)

STACK_TEMPLATE = """
AWSTemplateFormatVersion: '2010-09-09'
Description: EC2 instance with SSH access

Parameters:
  ImageId:
    Type: String
    Description: AMI ID for the EC2 instance
  InstanceType:
    Type: String
    Description: EC2 instance type
    Default: t3.micro
  UserData:
    Type: String
    Description: Base64 encoded UserData script
  VpcId:
    Type: String
    Description: VPC ID for the security group
    Default: ""
  SubnetId:
    Type: String
    Description: Subnet ID for the EC2 instance
    Default: ""
  Users:
    Type: String
    Description: Length-prefixed list of username and GitHub username pairs
    Default: ""

Conditions:
  HasVpc: !Not [!Equals [!Ref VpcId, ""]]
  HasSubnet: !Not [!Equals [!Ref SubnetId, ""]]

Resources:
  SSHSecurityGroup:
    Type: AWS::EC2::SecurityGroup
    Properties:
      GroupDescription: Allow SSH and web inbound traffic
      VpcId: !If [HasVpc, !Ref VpcId, !Ref "AWS::NoValue"]
      SecurityGroupIngress:
        - IpProtocol: tcp
          FromPort: 22
          ToPort: 22
          CidrIp: 0.0.0.0/0
        - IpProtocol: tcp
          FromPort: 80
          ToPort: 80
          CidrIp: 0.0.0.0/0
        - IpProtocol: tcp
          FromPort: 443
          ToPort: 443
          CidrIp: 0.0.0.0/0
      Tags:
        - Key: Name
          Value: SSHAccess

  EC2Instance:
    Type: AWS::EC2::Instance
    Properties:
      InstanceType: !Ref InstanceType
      ImageId: !Ref ImageId
      NetworkInterfaces:
        - DeviceIndex: "0"
          SubnetId: !If [HasSubnet, !Ref SubnetId, !Ref "AWS::NoValue"]
          AssociatePublicIpAddress: true
          GroupSet:
            - !GetAtt SSHSecurityGroup.GroupId
      UserData: !Ref UserData
      Tags:
        - Key: Name
          Value: !Ref AWS::StackName
        - Key: Users
          Value: !Ref Users

Outputs:
  InstanceId:
    Description: Instance ID
    Value: !Ref EC2Instance
  PublicIP:
    Description: Public IP Address
    Value: !GetAtt EC2Instance.PublicIp
  InstanceType:
    Description: Instance Type
    Value: !Ref InstanceType
  SecurityGroupId:
    Description: Security Group ID
    Value: !Ref SSHSecurityGroup
"""

CREATE_PENDING_STATUSES = {"CREATE_IN_PROGRESS", "REVIEW_IN_PROGRESS"}


def create_compute_stack(
    session: Any,
    stack_name: str,
    image_id: str,
    instance_type: str,
    user_data: str,
    users: str,
    network: NetworkResources,
    reporter: Callable[[str], None],
    timeout_seconds: int = 600,
    poll_interval_seconds: int = 15,
) -> ComputeOutputs:
    """Submit the compute stack and block until it is complete.

    A stack that already exists under the same name is awaited instead of
    being submitted again.

    Returns:
        The stack outputs.
    """
    cfn = session.client("cloudformation")
    parameters = {
        "ImageId": image_id,
        "InstanceType": instance_type,
        "UserData": user_data,
        "VpcId": network.vpc_id or "",
        "SubnetId": network.subnet_id or "",
        "Users": users,
    }
    try:
        response = cfn.create_stack(
            StackName=stack_name,
            TemplateBody=STACK_TEMPLATE,
            Parameters=[
                {"ParameterKey": key, "ParameterValue": value}
                for key, value in parameters.items()
            ],
            Tags=[
                {"Key": "Purpose", "Value": "EC2Instance"},
                {"Key": "ManagedBy", "Value": "ec2-stack"},
            ],
        )
        reporter(f"Stack creation initiated: {response['StackId']}")
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code != "AlreadyExistsException":
            raise ProvisioningError(f"Failed to create stack {stack_name}: {exc}") from exc
        reporter(f"Stack {stack_name} already exists, waiting for it")

    reporter("Waiting for stack to complete...")
    stack = wait_for_stack(
        cfn,
        stack_name,
        success_status="CREATE_COMPLETE",
        pending_statuses=CREATE_PENDING_STATUSES,
        timeout_seconds=timeout_seconds,
        poll_interval_seconds=poll_interval_seconds,
    )
    if stack is None:
        raise ProvisioningError(f"Stack {stack_name} disappeared while it was being created.")
    return _stack_outputs(stack)


def delete_compute_stack(
    session: Any,
    stack_name: str,
    reporter: Callable[[str], None],
    timeout_seconds: int = 600,
    poll_interval_seconds: int = 15,
) -> None:
    """Delete the compute stack and block until it is gone."""
    cfn = session.client("cloudformation")
    try:
        cfn.delete_stack(StackName=stack_name)
    except ClientError as exc:
        raise ProvisioningError(f"Failed to delete stack {stack_name}: {exc}") from exc

    reporter("Stack deletion initiated, waiting for completion...")
    wait_for_stack(
        cfn,
        stack_name,
        success_status="DELETE_COMPLETE",
        pending_statuses=None,
        timeout_seconds=timeout_seconds,
        poll_interval_seconds=poll_interval_seconds,
    )


def describe_stack(cfn: Any, stack_name: str) -> dict[str, Any] | None:
    """Return the stack description, or None when it does not exist."""
    try:
        response = cfn.describe_stacks(StackName=stack_name)
    except ClientError as exc:
        error = exc.response.get("Error", {})
        if error.get("Code") == "ValidationError" and "does not exist" in str(
            error.get("Message", "")
        ):
            return None
        raise ProvisioningError(f"Failed to describe stack {stack_name}: {exc}") from exc

    stacks = response.get("Stacks", [])
    return cast(dict[str, Any], stacks[0]) if stacks else None


def wait_for_stack(
    cfn: Any,
    stack_name: str,
    success_status: str,
    pending_statuses: set[str] | None,
    timeout_seconds: int,
    poll_interval_seconds: int,
) -> dict[str, Any] | None:
    """Poll a stack at a fixed interval until it settles or the ceiling passes.

    Args:
        cfn: CloudFormation client.
        stack_name: Stack to poll.
        success_status: Status that ends the wait successfully.
        pending_statuses: Statuses that keep the wait going. None means any
            status other than the success status or a ``*_FAILED`` one.
        timeout_seconds: Absolute ceiling for the wait.
        poll_interval_seconds: Delay between polls.

    Returns:
        The final stack description, or None when the stack no longer exists.
    """
    deadline = time.time() + timeout_seconds

    while time.time() < deadline:
        stack = describe_stack(cfn, stack_name)
        if stack is None:
            return None

        status = str(stack.get("StackStatus", ""))
        logger.debug(f"Stack {stack_name} status: {status}")
        if status == success_status:
            return stack
        if _is_pending(status, pending_statuses):
            time.sleep(poll_interval_seconds)
            continue

        reason = stack.get("StackStatusReason", "no reason given")
        raise ProvisioningError(f"Stack {stack_name} ended in {status}: {reason}")

    raise ProvisioningError(
        f"Timed out waiting for stack {stack_name} to reach {success_status} "
        f"after {timeout_seconds} seconds."
    )


def _is_pending(status: str, pending_statuses: set[str] | None) -> bool:
    if pending_statuses is None:
        return not status.endswith("_FAILED")
    return status in pending_statuses


def _stack_outputs(stack: dict[str, Any]) -> ComputeOutputs:
    """Map CloudFormation outputs to compute outputs."""
    outputs = {item["OutputKey"]: item["OutputValue"] for item in stack.get("Outputs", [])}
    return ComputeOutputs(
        stack_id=str(stack.get("StackId", "")),
        instance_id=outputs.get("InstanceId", ""),
        public_ip=outputs.get("PublicIP", ""),
        instance_type=outputs.get("InstanceType", ""),
        security_group_id=outputs.get("SecurityGroupId", ""),
    )
