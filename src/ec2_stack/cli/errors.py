"""Error rendering for the CLI."""

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    ProfileNotFound,
)

from rich.markup import escape

from ec2_stack.cli.ui import err_console
from ec2_stack.core.errors import (
    DeletionWarning,
    Ec2StackError,
    NetworkProvisioningError,
    ResourceLookupError,
    StoreError,
    ValidationError,
)

FATAL_ERRORS = (Ec2StackError, BotoCoreError, ClientError)


def report_error(exc: Exception) -> None:
    """Render a fatal error with actionable guidance.

    Args:
        exc: Raised exception from a stack command.
    """
    if isinstance(exc, ValidationError):
        err_console.print(
            f"[red]Invalid stack configuration in {escape(exc.field)}: {escape(exc.message)}[/red]"
        )
        return

    if isinstance(exc, StoreError):
        err_console.print(f"[red]{escape(str(exc))}[/red]")
        return

    if is_aws_auth_error(exc):
        err_console.print(
            "[red]AWS authentication failed. Your credentials are missing, invalid, "
            "or expired.[/red]"
        )
        err_console.print(
            "[dim]If using AWS profile/SSO, run: aws sso login --profile <profile>. "
            "If using temporary keys, refresh AWS_SESSION_TOKEN and retry.[/dim]"
        )
        return

    if is_aws_endpoint_error(exc):
        err_console.print("[red]Could not reach AWS endpoint from this environment.[/red]")
        err_console.print("[dim]Check network connectivity and AWS region configuration.[/dim]")
        return

    if isinstance(exc, ResourceLookupError):
        err_console.print(f"[red]Required resource not found: {escape(str(exc))}[/red]")
        return

    err_console.print(f"[red]Stack operation failed: {escape(str(exc))}[/red]")
    if isinstance(exc, NetworkProvisioningError):
        err_console.print(
            "[dim]Network resources created so far were saved. "
            "Run delete to remove them.[/dim]"
        )


def report_warnings(warnings: list[DeletionWarning]) -> None:
    """Print teardown warnings."""
    for warning in warnings:
        err_console.print(f"[yellow]Warning: {escape(str(warning))}[/yellow]")


def is_aws_auth_error(exc: Exception) -> bool:
    """Return true when an exception chain indicates AWS auth issues.

    Args:
        exc: Raised exception from a stack command.

    Returns:
        True when the chain contains an auth-related error.
    """
    auth_codes = {
        "ExpiredToken",
        "ExpiredTokenException",
        # spellchecker:ignore-next-line
        "UnrecognizedClientException",
        "InvalidClientTokenId",
        "InvalidSignatureException",
        "AccessDenied",
        "AccessDeniedException",
        "UnauthorizedOperation",
    }
    for item in exception_chain(exc):
        if isinstance(item, (NoCredentialsError, ProfileNotFound)):
            return True
        if isinstance(item, ClientError):
            code = str(item.response.get("Error", {}).get("Code", ""))
            if code in auth_codes:
                return True
        if "security token included in the request is expired" in str(item).lower():
            return True
    return False


def is_aws_endpoint_error(exc: Exception) -> bool:
    """Return true when an exception chain indicates endpoint/network errors."""
    return any(isinstance(item, EndpointConnectionError) for item in exception_chain(exc))


def exception_chain(exc: BaseException) -> list[BaseException]:
    """Return exceptions in cause/context chain.

    Args:
        exc: Root exception.

    Returns:
        Ordered exception chain from root to cause/context.
    """
    chain: list[BaseException] = []
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        chain.append(current)
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return chain
