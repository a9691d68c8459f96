"""Filesystem paths for stack files."""

from pathlib import Path

STACK_SUFFIX = ".json"


def resolve_stack_path(name: str, stacks_dir: str | Path) -> Path:
    """Return the stack file for a stack name.

    ``<stacks_dir>/<name>.json`` is used when it exists. Otherwise the name
    is treated as a path, with ``.json`` appended when it has no suffix.

    Args:
        name: Stack name or path given on the command line.
        stacks_dir: Directory holding stack files.

    Returns:
        The stack file path, which may not exist.
    """
    candidate = Path(stacks_dir) / f"{name}{STACK_SUFFIX}"
    if candidate.is_file():
        return candidate

    path = Path(name)
    if path.suffix != STACK_SUFFIX:
        path = path.with_name(f"{path.name}{STACK_SUFFIX}")
    return path


def stack_name_from(argument: str) -> str:
    """Return the stack name for a command-line argument.

    Paths contribute their file stem, so ``stacks/web.json`` names ``web``.
    """
    if "/" in argument or argument.endswith(STACK_SUFFIX):
        return Path(argument).stem
    return argument
