"""CanopySettings — connection and storage settings, optionally from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from canopy.tree.traversal import DEFAULT_MAX_DEPTH

DEFAULT_HOME = Path.home() / ".canopy"

_TRUTHY = {"1", "true", "yes", "on"}


def _default_database_url() -> str:
    return f"sqlite+aiosqlite:///{DEFAULT_HOME / 'canopy.db'}"


@dataclass
class CanopySettings:
    """Settings for building a ``CanopyAsync`` with ``from_settings``.

    Attributes:
        database_url: SQLAlchemy async URL, e.g. ``postgresql+asyncpg://...``.
        blob_dir: Directory for the local blob store.
        base_url: Prefix for derived download and thumbnail URLs.
        max_depth: Upper bound on any walk of the parent chain.
        echo_sql: Log emitted SQL through the engine.
    """

    database_url: str = field(default_factory=_default_database_url)
    blob_dir: Path = field(default_factory=lambda: DEFAULT_HOME / "blobs")
    base_url: str = ""
    max_depth: int = DEFAULT_MAX_DEPTH
    echo_sql: bool = False

    def __post_init__(self) -> None:
        self.blob_dir = Path(self.blob_dir)
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be positive, got {self.max_depth}")

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> CanopySettings:
        """Read ``CANOPY_*`` variables, falling back to the defaults."""
        env = os.environ if environ is None else environ
        settings = cls()
        if url := env.get("CANOPY_DATABASE_URL"):
            settings.database_url = url
        if blob_dir := env.get("CANOPY_BLOB_DIR"):
            settings.blob_dir = Path(blob_dir).expanduser()
        if "CANOPY_BASE_URL" in env:
            settings.base_url = env["CANOPY_BASE_URL"]
        if depth := env.get("CANOPY_MAX_DEPTH"):
            settings.max_depth = int(depth)
            if settings.max_depth < 1:
                raise ValueError(f"CANOPY_MAX_DEPTH must be positive, got {depth}")
        if echo := env.get("CANOPY_ECHO_SQL"):
            settings.echo_sql = echo.strip().lower() in _TRUTHY
        return settings
