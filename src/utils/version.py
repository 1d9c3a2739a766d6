"""Version and runtime environment helpers."""

from pathlib import Path

import tomlkit

__all__ = ["get_docker_status", "get_git_hash", "get_pyproject_version"]

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def get_pyproject_version(root: Path = PROJECT_ROOT) -> str:
    """Read the project version from ``pyproject.toml``.

    Args:
        root (Path): Directory containing the ``pyproject.toml`` file.

    Returns:
        str: The declared version, or ``"unknown"`` when it cannot be read.
    """
    toml_file = root / "pyproject.toml"
    if not toml_file.is_file():
        return "unknown"

    with toml_file.open(encoding="utf-8") as f:
        document = tomlkit.load(f)

    project = document.get("project", {})
    return str(project.get("version", "unknown"))


def get_git_hash(root: Path = PROJECT_ROOT) -> str:
    """Resolve the commit hash checked out in ``root``.

    Only plain branch checkouts are understood; detached heads and packed refs
    report ``"unknown"``.

    Args:
        root (Path): Repository root containing the ``.git`` directory.

    Returns:
        str: The commit hash, or ``"unknown"``.
    """
    git_dir = root / ".git"
    head_file = git_dir / "HEAD"
    if not head_file.is_file():
        return "unknown"

    head = head_file.read_text(encoding="utf-8").strip()
    if not head.startswith("ref: refs/heads/"):
        return "unknown"

    ref_file = git_dir / head.removeprefix("ref: ")
    if not ref_file.is_file():
        return "unknown"
    return ref_file.read_text(encoding="utf-8").strip()


def get_docker_status() -> bool:
    """Check whether the process runs inside a Docker container."""
    return Path("/.dockerenv").is_file()
