"""Reading and writing lotscout configuration files."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping

import yaml
from pydantic import BaseModel, ValidationError

from ..errors import ConfigError, NotFoundError
from .models import GlobalConfig, SourceConfig

GLOBAL_CONFIG_FILENAME = "global_config.yaml"

# environment variable -> attribute on GlobalConfig.ai
ENV_OVERRIDES = {
    "AI_API_KEY": "api_key",
    "AI_MODEL": "model",
    "AI_BASE_URL": "base_url",
    "AI_AZURE_ENDPOINT": "azure_endpoint",
    "AI_AZURE_API_VERSION": "azure_api_version",
    "AI_AZURE_DEPLOYMENT": "azure_deployment",
}

_NON_SLUG = re.compile(r"[\W_]")


def _dump_yaml(payload: dict, stream) -> None:
    yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)


def _dump_json(payload: dict, stream) -> None:
    json.dump(payload, stream, indent=2, ensure_ascii=False)


# suffix -> (parse text, write payload)
_CODECS: dict[str, tuple[Callable[[str], Any], Callable[[dict, Any], None]]] = {
    ".yaml": (yaml.safe_load, _dump_yaml),
    ".yml": (yaml.safe_load, _dump_yaml),
    ".json": (json.loads, _dump_json),
}
CONFIG_EXTENSIONS = tuple(_CODECS)


def source_slug(name: str) -> str:
    return _NON_SLUG.sub("-", name.lower()).strip("-")


def read_mapping(path: Path) -> dict:
    parse, _ = _CODECS[path.suffix]
    try:
        data = parse(path.read_text(encoding="utf-8"))
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot parse configuration file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file must contain a mapping: {path}")
    return data


def write_model(path: Path, model: BaseModel) -> Path:
    _, dump = _CODECS[path.suffix]
    with path.open("w", encoding="utf-8") as stream:
        dump(model.model_dump(mode="json"), stream)
    return path


def apply_env_overrides(config: GlobalConfig, environ: Mapping[str, str] | None = None) -> GlobalConfig:
    """Return a copy of ``config`` with classifier settings taken from the environment."""

    env = os.environ if environ is None else environ
    updates = {attr: env[key] for key, attr in ENV_OVERRIDES.items() if env.get(key)}
    if not updates:
        return config
    ai = config.ai.model_copy(update=updates)
    return config.model_copy(update={"ai": ai})


@dataclass(frozen=True)
class ConfigLocator:
    """Directory layout below a lotscout home.

    ``<home>/data`` holds the global config and the database,
    ``<home>/data/sources`` one file per source, ``<home>/logs`` the logs.
    """

    project_root: Path

    @classmethod
    def discover(cls, project_root: Path | str | None = None) -> "ConfigLocator":
        """Use ``project_root``, else ``$LOTSCOUT_HOME``, else the working directory."""

        candidate = project_root or os.environ.get("LOTSCOUT_HOME")
        root = Path(candidate).expanduser() if candidate else Path.cwd()
        return cls(root.resolve())

    @property
    def data_dir(self) -> Path:
        return self.project_root / "data"

    @property
    def sources_dir(self) -> Path:
        return self.data_dir / "sources"

    @property
    def logs_dir(self) -> Path:
        return self.project_root / "logs"

    @property
    def global_config_file(self) -> Path:
        return self.data_dir / GLOBAL_CONFIG_FILENAME

    def ensure_directories(self) -> None:
        for directory in (self.sources_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)


class ConfigRepository:
    """Validated access to the global config and the per-source files."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator.discover()
        self.locator.ensure_directories()

    def _validate(self, model: type[BaseModel], path: Path) -> Any:
        try:
            return model.model_validate(read_mapping(path))
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration {path}: {exc}") from exc

    def load_global_config(self) -> GlobalConfig:
        """Load the global config, writing defaults on first use."""

        path = self.locator.global_config_file
        if path.exists():
            config = self._validate(GlobalConfig, path)
        else:
            config = GlobalConfig()
            self.save_global_config(config)
        return apply_env_overrides(config)

    def save_global_config(self, config: GlobalConfig) -> None:
        write_model(self.locator.global_config_file, config)

    def source_path(self, source_name: str) -> Path:
        return self.locator.sources_dir / f"{source_slug(source_name)}.yaml"

    def iter_source_files(self) -> Iterator[Path]:
        return (
            path
            for path in sorted(self.locator.sources_dir.iterdir())
            if path.is_file() and path.suffix in CONFIG_EXTENSIONS
        )

    def list_sources(self, enabled_only: bool = False) -> list[SourceConfig]:
        sources = [self.load_source(path) for path in self.iter_source_files()]
        return [source for source in sources if source.enabled or not enabled_only]

    def load_source(self, identifier: str | Path) -> SourceConfig:
        path = identifier if isinstance(identifier, Path) else self.source_path(identifier)
        if not path.is_file():
            raise NotFoundError(f"Source configuration not found: {identifier}")
        return self._validate(SourceConfig, path)

    def save_source(self, config: SourceConfig) -> Path:
        return write_model(self.source_path(config.source_name), config)

    def set_enabled(self, source_name: str, enabled: bool) -> SourceConfig:
        config = self.load_source(source_name).model_copy(update={"enabled": enabled})
        self.save_source(config)
        return config

    def delete_source(self, source_name: str) -> None:
        self.source_path(source_name).unlink(missing_ok=True)


__all__ = [
    "CONFIG_EXTENSIONS",
    "ConfigLocator",
    "ConfigRepository",
    "ENV_OVERRIDES",
    "apply_env_overrides",
    "read_mapping",
    "source_slug",
    "write_model",
]
