"""Installed package inventory from the local pacman database."""

from enum import Enum
import subprocess

from loguru import logger

from fazuh.thumbsup.error import PacmanError

OFFICIAL_REPOS = frozenset(
    {
        "core",
        "extra",
        "community",
        "multilib",
        "testing",
        "core-testing",
        "extra-testing",
        "community-testing",
        "multilib-testing",
    }
)


class Versioning(Enum):
    OLDER = -1
    SAME = 0
    NEWER = 1


def _run(*args: str) -> str:
    try:
        result = subprocess.run(args, capture_output=True, text=True, check=False)
    except OSError as e:
        raise PacmanError(f"Cannot run `{args[0]}`: {e}") from e
    if result.returncode != 0:
        raise PacmanError(
            f"`{' '.join(args)}` exited with {result.returncode}: {result.stderr.strip()}"
        )
    return result.stdout


def list_repos(official: bool | None = None) -> list[str]:
    """List configured sync repositories.

    Args:
        official: True for official repositories only, False for the others,
            None for all of them.
    """
    output = _run("pacman-conf", "--repo-list")
    repos = [line.strip() for line in output.splitlines() if line.strip()]
    if official is None:
        return repos
    return [repo for repo in repos if (repo in OFFICIAL_REPOS) == official]


def list_installed() -> dict[str, str]:
    """All installed packages, name -> version."""
    packages = {}
    for line in _run("pacman", "-Q").splitlines():
        parts = line.split()
        if len(parts) >= 2:
            packages[parts[0]] = parts[1]
    return packages


def list_installed_in_repo(repo: str) -> dict[str, str]:
    """Installed packages of one sync repository, name -> version."""
    packages = {}
    # "<repo> <name> <version> [installed]" or "[installed: <local version>]"
    for line in _run("pacman", "-Sl", repo).splitlines():
        if "[installed" not in line:
            continue
        parts = line.split()
        if len(parts) >= 3:
            packages[parts[1]] = parts[2]
    return packages


def list_installed_non_official() -> dict[str, str]:
    """Installed packages from every non-official repository, name -> version."""
    packages: dict[str, str] = {}
    for repo in list_repos(official=False):
        for name, version in list_installed_in_repo(repo).items():
            packages.setdefault(name, version)
    logger.debug(f"{len(packages)} installed package(s) from non-official repositories.")
    return packages


def vercmp(left: str, right: str) -> Versioning:
    """Compare two package versions with pacman's `vercmp`."""
    output = _run("vercmp", left, right).strip()
    try:
        result = int(output)
    except ValueError as e:
        raise PacmanError(f"Unexpected vercmp output: {output!r}") from e
    if result < 0:
        return Versioning.OLDER
    if result > 0:
        return Versioning.NEWER
    return Versioning.SAME
