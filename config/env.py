"""Environment loading and typed readers for settings.

Local configuration may live in dotenv files at the project root. Existing
process variables always win over file values:

- ``.env`` is always read when present
- ``.env.dev`` is read on top when ``DJANGO_ENV`` is dev/development/local

Production deployments should set real environment variables instead.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEV_ENVIRONMENTS = {"dev", "development", "local"}
TRUTHY = {"1", "true", "yes", "on"}


def env_files(base_dir: Path) -> list[Path]:
    files = [base_dir / ".env"]
    if os.environ.get("DJANGO_ENV", "").lower() in DEV_ENVIRONMENTS:
        files.append(base_dir / ".env.dev")
    return files


def load_env(base_dir: Path | None = None) -> None:
    """Populate os.environ from dotenv files. Safe to call repeatedly."""
    for path in env_files(base_dir or PROJECT_ROOT):
        if path.is_file():
            load_dotenv(path, override=False)


def env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in TRUTHY


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    return int(raw) if raw else default


def env_list(name: str, default: list[str] | None = None) -> list[str]:
    """Comma separated list; blank items are dropped."""
    raw = os.environ.get(name)
    if raw is None:
        return list(default or [])
    return [item.strip() for item in raw.split(",") if item.strip()]
