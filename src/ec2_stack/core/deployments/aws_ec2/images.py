"""Machine image lookup through SSM public parameters."""

from typing import Any, cast

from botocore.exceptions import ClientError

from ec2_stack.core.errors import ResourceLookupError

OS_PARAMETER_PATHS = {
    "amazon-linux-2023": "/aws/service/ami-amazon-linux-latest/al2023-ami-kernel-default-x86_64",
    "amazon-linux-2": "/aws/service/ami-amazon-linux-latest/amzn2-ami-hvm-x86_64-gp2",
    "ubuntu-24.04": (
        "/aws/service/canonical/ubuntu/server/24.04/stable/current/amd64/hvm/ebs-gp2/ami-id"
    ),
    "ubuntu-22.04": (
        "/aws/service/canonical/ubuntu/server/22.04/stable/current/amd64/hvm/ebs-gp2/ami-id"
    ),
    "ubuntu-20.04": (
        "/aws/service/canonical/ubuntu/server/20.04/stable/current/amd64/hvm/ebs-gp2/ami-id"
    ),
    "debian-12": "/aws/service/debian/release/12/latest/amd64",
    "debian-11": "/aws/service/debian/release/11/latest/amd64",
}


def supported_os() -> list[str]:
    """Return the supported OS identifiers."""
    return sorted(OS_PARAMETER_PATHS)


def lookup_image(session: Any, os_name: str) -> str:
    """Resolve an OS identifier to the current AMI ID."""
    parameter = OS_PARAMETER_PATHS.get(os_name)
    if parameter is None:
        raise ResourceLookupError(
            f"Unsupported OS '{os_name}'. Supported: {', '.join(supported_os())}"
        )

    ssm = session.client("ssm")
    try:
        response = ssm.get_parameter(Name=parameter)
    except ClientError as exc:
        code = exc.response.get("Error", {}).get("Code")
        if code == "ParameterNotFound":
            raise ResourceLookupError(
                f"No AMI published for {os_name} in this region ({parameter})."
            ) from exc
        raise ResourceLookupError(f"Failed to look up AMI for {os_name}: {exc}") from exc

    return cast(str, response["Parameter"]["Value"])
