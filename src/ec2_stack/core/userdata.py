"""Boot-time configuration for stack instances."""

import base64
import logging
import shlex
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from ec2_stack.core.errors import ProvisioningError, ValidationError
from ec2_stack.core.models import User

logger = logging.getLogger(__name__)

MIME_BOUNDARY = "MIMEBOUNDARY"
# EC2 tag values, where the encoded users end up, hold at most 256 characters.
MAX_ENCODED_USERS_LENGTH = 256


def render_user_script(users: list[User]) -> str:
    """Return a shell script creating each user with GitHub SSH keys."""
    lines = ["#!/bin/bash", "set -e", "", "# Auto-generated user setup script"]
    for user in users:
        name = shlex.quote(user.username)
        home = f"/home/{user.username}"
        keys_url = shlex.quote(f"https://github.com/{user.github_username}.keys")
        lines.extend(
            [
                "",
                f"# Create user: {user.username} (GitHub: {user.github_username})",
                f"useradd -m -s /bin/bash {name} || true",
                f"echo '{user.username} ALL=(ALL) NOPASSWD:ALL' > /etc/sudoers.d/{user.username}",
                f"mkdir -p {home}/.ssh",
                f"chmod 700 {home}/.ssh",
                f"curl -s {keys_url} > {home}/.ssh/authorized_keys",
                f"chmod 600 {home}/.ssh/authorized_keys",
                f"chown -R {user.username}:{user.username} {home}/.ssh",
            ]
        )
    return "\n".join(lines) + "\n"


def render_cloud_init(template_path: Path, context: dict[str, Any]) -> str:
    """Render a cloud-config template with jinja2.

    Args:
        template_path: Path to the template file.
        context: Template variables (hostname, domain, fqdn, region, os, users).

    Returns:
        The rendered cloud-config text.
    """
    if not template_path.is_file():
        raise ValidationError("vm.cloud_init_file", f"file not found: {template_path}")

    env = Environment(
        loader=FileSystemLoader(str(template_path.parent)),
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )
    try:
        return env.get_template(template_path.name).render(**context)
    except TemplateError as exc:
        raise ProvisioningError(f"Failed to render cloud-init template: {exc}") from exc


def build_user_data(user_script: str, cloud_config: str = "") -> str:
    """Combine the user script and cloud-config into base64 multipart data."""
    message = MIMEMultipart("mixed", boundary=MIME_BOUNDARY)

    script_part = MIMEText(user_script, "x-shellscript", "utf-8")
    script_part.add_header("Content-Disposition", "attachment", filename="setup-users.sh")
    message.attach(script_part)

    if cloud_config:
        config_part = MIMEText(cloud_config, "cloud-config", "utf-8")
        config_part.add_header("Content-Disposition", "attachment", filename="cloud-config.yaml")
        message.attach(config_part)

    payload = message.as_bytes()
    logger.debug(f"User data is {len(payload)} bytes before encoding")
    return base64.b64encode(payload).decode("ascii")


def encode_users(users: list[User]) -> str:
    """Encode users as length-prefixed fields, ``<len>:<value>`` each."""
    parts = []
    for user in users:
        for value in (user.username, user.github_username):
            parts.append(f"{len(value)}:{value}")
    return "".join(parts)
