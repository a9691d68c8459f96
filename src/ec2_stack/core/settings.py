"""Process-wide defaults for ec2-stack."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StackDefaults(BaseSettings):
    """Defaults applied to unset fields and tool-wide knobs.

    Values can be overridden with ``EC2_STACK_*`` environment variables or a
    local ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="EC2_STACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    region: str = Field(default="us-east-1", description="Default AWS region")
    os: str = Field(default="amazon-linux-2023", description="Default operating system")
    instance_type: str = Field(default="t3.micro", description="Default EC2 instance type")
    ttl: int = Field(default=300, description="Default DNS record TTL in seconds")
    stacks_dir: str = Field(default="stacks", description="Directory holding stack files")
    aws_profile: str | None = Field(default=None, description="AWS profile name")
    stack_timeout_seconds: int = Field(
        default=600, description="Ceiling for compute stack create/delete waits"
    )
    poll_interval_seconds: int = Field(
        default=15, description="Interval between compute stack status polls"
    )


def get_defaults() -> StackDefaults:
    """Load defaults from the environment."""
    return StackDefaults()
