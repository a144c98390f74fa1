"""Locate files that live next to a checkout (config.yaml, logging.ini, .env)."""

from __future__ import annotations

from pathlib import Path

ROOT_MARKERS = ("pyproject.toml", ".git")


def find_repo_root(start: Path | None = None) -> Path:
    """Nearest ancestor of ``start`` holding a root marker.

    An installed copy (site-packages) has no checkout above it; the working
    directory is used then, so ``jackpot-watch`` reads config.yaml from where
    it is run.
    """
    current = (start or Path(__file__).resolve()).resolve()
    if current.is_file():
        current = current.parent

    for candidate in [current, *current.parents]:
        if any((candidate / marker).exists() for marker in ROOT_MARKERS):
            return candidate
    return Path.cwd()


def repo_root() -> Path:
    return find_repo_root(Path(__file__).resolve())


def repo_file(*parts: str) -> Path:
    return repo_root().joinpath(*parts)
