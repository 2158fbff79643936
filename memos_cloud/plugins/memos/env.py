"""Environment discovery for the MemOS Cloud plugin.

Settings such as ``MEMOS_API_KEY`` usually live in a ``.env`` file written by
the host application's installer. Several hosts share this plugin, so a fixed
list of well-known files is searched; the first file defining a key wins.
When none of the files exist, the process environment is used instead.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

from dotenv import dotenv_values


# (source name, path) pairs in priority order
DEFAULT_ENV_SOURCES: Tuple[Tuple[str, Path], ...] = (
    ("openclaw", Path.home() / ".openclaw" / ".env"),
    ("moltbot", Path.home() / ".moltbot" / ".env"),
    ("clawdbot", Path.home() / ".clawdbot" / ".env"),
)


@dataclass
class EnvFileStatus:
    """Which env files were found during discovery."""
    found: bool
    sources: List[str] = field(default_factory=list)
    paths: List[str] = field(default_factory=list)
    search_paths: List[str] = field(default_factory=list)


@runtime_checkable
class EnvLookup(Protocol):
    """Key/value provider consulted by the config resolver."""

    def get(self, name: str) -> Optional[str]:
        """Return the value for ``name`` or None if undefined."""
        ...

    def status(self) -> EnvFileStatus:
        """Describe where values come from (for startup diagnostics)."""
        ...


class DotenvFileLookup:
    """Reads well-known ``.env`` files once, lazily.

    Lookup order for a key:
    1. Each env file in source order; the first file defining the key wins.
    2. ``os.environ``, only when no env file exists at all.
    """

    def __init__(
        self,
        sources: Optional[List[Tuple[str, Path]]] = None,
        environ: Optional[Mapping[str, str]] = None
    ):
        self._sources = list(sources) if sources is not None else list(DEFAULT_ENV_SOURCES)
        self._environ = environ if environ is not None else os.environ
        self._loaded = False
        self._values: Dict[str, Dict[str, Optional[str]]] = {}

    def _load(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        for name, path in self._sources:
            path = Path(path)
            if not path.is_file():
                continue
            try:
                self._values[name] = dict(dotenv_values(path))
            except (OSError, UnicodeDecodeError):
                continue

    def get(self, name: str) -> Optional[str]:
        self._load()
        for source, _ in self._sources:
            values = self._values.get(source)
            if values is None:
                continue
            if name in values and values[name] is not None:
                return values[name]
        if not self._values:
            return self._environ.get(name)
        return None

    def status(self) -> EnvFileStatus:
        self._load()
        found = [(name, str(path)) for name, path in self._sources if name in self._values]
        return EnvFileStatus(
            found=bool(found),
            sources=[name for name, _ in found],
            paths=[path for _, path in found],
            search_paths=[str(path) for _, path in self._sources],
        )


class MappingEnvLookup:
    """EnvLookup over a plain mapping (embedding hosts and tests)."""

    def __init__(self, values: Optional[Mapping[str, str]] = None):
        self._values = dict(values or {})

    def get(self, name: str) -> Optional[str]:
        return self._values.get(name)

    def status(self) -> EnvFileStatus:
        return EnvFileStatus(found=True, sources=["mapping"])
