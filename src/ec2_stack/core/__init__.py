"""ec2-stack core modules."""

from ec2_stack.core.errors import (
    Ec2StackError,
    ProvisioningError,
    ResourceLookupError,
    StoreError,
    ValidationError,
)
from ec2_stack.core.models import DnsConfig, DnsRecord, StackConfig, User, VmConfig
from ec2_stack.core.settings import StackDefaults, get_defaults

__all__ = [
    "DnsConfig",
    "DnsRecord",
    "Ec2StackError",
    "ProvisioningError",
    "ResourceLookupError",
    "StackConfig",
    "StackDefaults",
    "StoreError",
    "User",
    "ValidationError",
    "VmConfig",
    "get_defaults",
]
