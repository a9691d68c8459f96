"""Error taxonomy for stack orchestration."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ec2_stack.core.deployments.aws_ec2.models import NetworkResources


class Ec2StackError(RuntimeError):
    """Base class for fatal stack errors."""


class ValidationError(Ec2StackError):
    """The stack document is invalid. Raised before any AWS call."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class ResourceLookupError(Ec2StackError):
    """A required existing resource could not be found."""


class ProvisioningError(Ec2StackError):
    """A create call failed or a blocking wait timed out."""


class NetworkProvisioningError(ProvisioningError):
    """Network creation failed part way through.

    ``partial`` holds whatever was resolved or created before the failure so
    that it can be persisted and cleaned up by a later delete.
    """

    def __init__(self, message: str, partial: "NetworkResources") -> None:
        super().__init__(message)
        self.partial = partial


class StoreError(Ec2StackError):
    """The stack file could not be read or written."""


class DeletionWarning(UserWarning):
    """A teardown step failed. Logged, never raised."""

    def __init__(self, step: str, resource: str, reason: str) -> None:
        super().__init__(f"{step}: failed to delete {resource}: {reason}")
        self.step = step
        self.resource = resource
        self.reason = reason
