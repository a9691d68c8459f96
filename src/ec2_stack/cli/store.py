"""Stack file persistence."""

import json
import logging
import os
import tempfile
from pathlib import Path

from ec2_stack.core.errors import StoreError
from ec2_stack.core.models import StackConfig
from ec2_stack.core.normalizer import normalize_config, parse_config
from ec2_stack.core.settings import StackDefaults

logger = logging.getLogger(__name__)


class StackStore:
    """Reads and writes one stack file.

    Writes go to a temporary file in the same directory which then replaces
    the stack file, so readers never see a partly written document.
    """

    def __init__(self, path: Path, defaults: StackDefaults) -> None:
        self.path = path
        self.defaults = defaults

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self, validate: bool = True) -> StackConfig:
        """Load and normalize the stack file.

        Args:
            validate: Check the input rules. Teardown and status skip them so
                that a file edited after creation can still be acted on.

        Returns:
            The normalized configuration.
        """
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise StoreError(f"Stack file not found: {self.path}") from exc
        except json.JSONDecodeError as exc:
            raise StoreError(f"Invalid stack file {self.path}: {exc}") from exc
        except OSError as exc:
            raise StoreError(f"Failed to read stack file {self.path}: {exc}") from exc

        if not isinstance(data, dict):
            raise StoreError(f"Stack file {self.path} must contain a JSON object.")
        if not validate:
            return parse_config(data, self.defaults)
        return normalize_config(data, self.defaults)

    def save(self, config: StackConfig) -> Path:
        """Write the configuration atomically.

        Args:
            config: Configuration to save.

        Returns:
            The saved stack file path.
        """
        payload = json.dumps(
            config.model_dump(mode="json", exclude_defaults=True), indent=2
        )
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(
                dir=directory, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload + "\n")
                os.replace(temp_name, self.path)
            except BaseException:
                Path(temp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StoreError(f"Failed to write stack file {self.path}: {exc}") from exc

        logger.debug(f"Saved stack file {self.path}")
        return self.path
