"""Migration configuration loading."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any

from ruamel.yaml import YAML

DEFAULT_NAMESPACE = "cda"
DEFAULT_VERSION = "61"
DEFAULT_LEXICON_NAMESPACE = "cl"
DEFAULT_LEXICON_VERSION = "1.76"

# Stored node_type strings -> node kind. Older imports used the short forms.
DEFAULT_TYPE_ALIASES: dict[str, str] = {
    "metadata": "metadata",
    "cda": "metadata",
    "directive": "directive",
    "lexicon-term": "lexicon-term",
    "lexicon_term": "lexicon-term",
    "cl_term": "lexicon-term",
}

# Identifier values that mean "no identifier" in imported data.
DEFAULT_SENTINEL_IDS = ("null", "undefined")


@dataclass
class MigrationConfig:
    """Naming rules for an identifier migration.

    Resolution order for the scalar settings:
    1. Environment variable (e.g., LOOM_DEFAULT_VERSION)
    2. Config file value
    3. Built-in default

    Attributes:
        namespace: Prefix for dataset-scoped identifiers (``cda``).
        default_version: Dataset version used when a node declares none.
        lexicon_namespace: Prefix for lexicon term identifiers (``cl``).
        default_lexicon_version: Lexicon version used when a term declares none.
        type_aliases: Stored ``node_type`` string -> node kind.
        sentinel_ids: Identifier strings treated as missing.
    """

    namespace: str = DEFAULT_NAMESPACE
    default_version: str = DEFAULT_VERSION
    lexicon_namespace: str = DEFAULT_LEXICON_NAMESPACE
    default_lexicon_version: str = DEFAULT_LEXICON_VERSION
    type_aliases: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_TYPE_ALIASES))
    sentinel_ids: tuple[str, ...] = DEFAULT_SENTINEL_IDS

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MigrationConfig:
        """Create config from dictionary, applying environment overrides.

        Args:
            data: Dictionary with any of the attribute names as keys.
                ``type_aliases`` entries extend the defaults.

        Returns:
            MigrationConfig instance.
        """
        aliases = dict(DEFAULT_TYPE_ALIASES)
        aliases.update({str(k): str(v) for k, v in (data.get("type_aliases") or {}).items()})

        sentinels = data.get("sentinel_ids")
        return cls(
            namespace=os.getenv("LOOM_NAMESPACE") or str(data.get("namespace", DEFAULT_NAMESPACE)),
            default_version=os.getenv("LOOM_DEFAULT_VERSION")
            or str(data.get("default_version", DEFAULT_VERSION)),
            lexicon_namespace=os.getenv("LOOM_LEXICON_NAMESPACE")
            or str(data.get("lexicon_namespace", DEFAULT_LEXICON_NAMESPACE)),
            default_lexicon_version=os.getenv("LOOM_DEFAULT_LEXICON_VERSION")
            or str(data.get("default_lexicon_version", DEFAULT_LEXICON_VERSION)),
            type_aliases=aliases,
            sentinel_ids=tuple(str(s) for s in sentinels) if sentinels else DEFAULT_SENTINEL_IDS,
        )


class MigrationConfigError(Exception):
    """Raised when a migration config file cannot be loaded."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load migration config at {path}: {reason}")


def load_migration_config(config_path: Path | None = None) -> MigrationConfig:
    """Load migration configuration from a YAML file.

    Args:
        config_path: Path to the YAML file. When None, defaults plus
            environment overrides are returned.

    Returns:
        MigrationConfig instance.

    Raises:
        MigrationConfigError: If the file is missing, empty or malformed.
    """
    if config_path is None:
        return MigrationConfig.from_dict({})

    if not config_path.exists():
        raise MigrationConfigError(config_path, "File not found")

    yaml = YAML(typ="safe")
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)

        if data is None:
            raise MigrationConfigError(config_path, "Empty file")
        if not isinstance(data, dict):
            raise MigrationConfigError(config_path, "Top level must be a mapping")

        return MigrationConfig.from_dict(dict(data))
    except Exception as e:
        if isinstance(e, MigrationConfigError):
            raise
        raise MigrationConfigError(config_path, str(e)) from e
