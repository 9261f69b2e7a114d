"""Prepper-backed configuration loader and settings store for Glossa."""

from __future__ import annotations

import os
from dataclasses import fields, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Literal, Mapping, Sequence

from dotenv import dotenv_values
from prepper import (
    Field,
    IoError,
    SchemaError,
    SchemaModel,
    ValidationError,
    model_validator,
)
from prepper.config import ConfigInstance
from prepper.loaders import _parse_file, _path_to_source, discover_file_paths
from prepper.merge import merge_layer
from prepper.provenance import ProvenanceRecorder

from .errors import GlossaError, TranslationProviderConfigurationError
from .structures import Settings

APP_NAME = "Glossa"
CEFR_LEVELS = ("A1", "A2", "B1", "B2", "C1", "C2")
DEFAULT_BATCH_TIMEOUT = 120.0
CONFIG_PATH_VARIABLE = "GLOSSA_CONFIG"


class GlossaConfig(SchemaModel):
    """Schema describing all supported configuration options."""

    LLM_PROVIDER: Literal["azure_openai", "openai"] = Field(
        default="openai",
        description="Large language model provider selection.",
    )
    AZURE_OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    AZURE_OPENAI_ENDPOINT: str | None = Field(default=None)
    AZURE_OPENAI_API_VERSION: str | None = Field(default=None)
    AZURE_OPENAI_DEPLOYMENT_NAME: str | None = Field(default=None)
    OPENAI_API_KEY: str | None = Field(default=None, secret=True)
    GLOSSA_MODEL: str | None = Field(
        default=None,
        description="Override for the chat model used for translation and analysis.",
    )
    GLOSSA_NATIVE_LANGUAGE: str = Field(default="English")
    GLOSSA_TARGET_LANGUAGE: str = Field(default="German")
    GLOSSA_CEFR_LEVEL: Literal["A1", "A2", "B1", "B2", "C1", "C2"] = Field(
        default="B1",
        description="Proficiency level the translation is written for.",
    )
    GLOSSA_SIMPLIFY: bool = Field(default=True)
    GLOSSA_AUTO_TRANSLATE: bool = Field(default=False)
    GLOSSA_BATCH_TIMEOUT: float = Field(
        default=DEFAULT_BATCH_TIMEOUT,
        description="Seconds before a translation batch is abandoned.",
    )
    GLOSSA_WORD_LEXICON: str | None = Field(
        default=None,
        description="Offline lexicon used for instant word glosses.",
    )
    GLOSSA_PROVIDER_DEBUG: bool = Field(default=False)

    @model_validator(mode="before")
    def _normalise_values(data: Any) -> Any:
        if isinstance(data, dict):
            raw_value = data.get("LLM_PROVIDER")
            if isinstance(raw_value, str):
                normalized = raw_value.strip().lower().replace("-", "_")
                synonyms = {
                    "azure_open_ai": "azure_openai",
                    "azureopenai": "azure_openai",
                }
                normalized = synonyms.get(normalized, normalized)
                if normalized not in {"openai", "azure_openai"}:
                    normalized = "openai"
                data["LLM_PROVIDER"] = normalized
            level = data.get("GLOSSA_CEFR_LEVEL")
            if isinstance(level, str):
                data["GLOSSA_CEFR_LEVEL"] = level.strip().upper()
        return data


@lru_cache(maxsize=1)
def _load_config_instance(app_dir: Path | None = None) -> ConfigInstance:
    """Merge YAML, .env and process environment layers into one cached instance.

    Later layers win: discovered YAML files, then ``GLOSSA_CONFIG``, then
    ``.env`` in the working directory, then the process environment.
    """

    base_dir = app_dir or Path.cwd()
    provenance = ProvenanceRecorder()
    layers: dict[str, Any] = {}
    try:
        for source, values in _yaml_layers(base_dir):
            merge_layer(layers, values, provenance=provenance, source=source, layer="file")
        for source, values in _env_layers(base_dir):
            merge_layer(layers, values, provenance=provenance, source=source, layer="env")
        model = GlossaConfig.validate(layers, provenance=provenance)
    except IoError as exc:
        raise TranslationProviderConfigurationError(
            f"Could not read Glossa settings: {exc}"
        ) from exc
    except SchemaError as exc:
        raise TranslationProviderConfigurationError(
            f"Glossa settings schema is invalid: {exc}"
        ) from exc
    except ValidationError as exc:
        raise TranslationProviderConfigurationError(
            _describe_invalid_settings(exc.to_dict())
        ) from exc

    return ConfigInstance(
        model=model,
        provenance=provenance,
        env_prefix=None,
        schema_cls=GlossaConfig,
    )


def _yaml_layers(base_dir: Path) -> Iterator[tuple[str, Mapping[str, Any]]]:
    explicit = os.environ.get(CONFIG_PATH_VARIABLE)
    extra = [Path(explicit).expanduser()] if explicit else None
    for path, label in discover_file_paths(APP_NAME, "yaml", app_dir=base_dir, extra_paths=extra):
        parsed = _parse_file(path, "yaml")
        if not isinstance(parsed, Mapping):
            raise IoError(f"{path} must hold a mapping of setting names to values.")
        yield _path_to_source(label, "yaml", path), parsed


def _env_layers(base_dir: Path) -> Iterator[tuple[str, Mapping[str, Any]]]:
    """Yield one single-key layer per recognised variable so provenance stays per key."""

    known = set(GlossaConfig.__field_infos__)
    dotenv_path = base_dir / ".env"
    sources: list[tuple[str, Mapping[str, Any]]] = []
    if dotenv_path.is_file():
        sources.append((".env", dotenv_values(dotenv_path)))
    sources.append(("process", os.environ))

    for origin, values in sources:
        for key in sorted(known.intersection(values)):
            value = values[key]
            if isinstance(value, str):
                yield f"env:{origin}:{key}", {key: value}


def _describe_invalid_settings(entries: Sequence[dict[str, Any]]) -> str:
    lines = ["Glossa settings are invalid:"]
    for entry in entries:
        path = entry.get("path") or ()
        where = (
            ".".join(str(part) for part in path if part not in (None, ""))
            if isinstance(path, (list, tuple))
            else str(path)
        )
        message = entry.get("message") or entry.get("msg") or "Invalid value"
        source = f" (from {entry['source']})" if entry.get("source") else ""
        lines.append(f"- {where + ': ' if where else ''}{message}{source}")
    return "\n".join(lines)


def get_config(app_dir: Path | None = None) -> ConfigInstance:
    """Return the immutable configuration instance."""

    return _load_config_instance(app_dir=app_dir)


def get_settings(app_dir: Path | None = None) -> GlossaConfig:
    """Return the validated schema model for typed access."""

    return get_config(app_dir=app_dir).model()


def reset_config_cache() -> None:
    _load_config_instance.cache_clear()


def settings_from_config(config: GlossaConfig) -> Settings:
    return Settings(
        native_language=config.GLOSSA_NATIVE_LANGUAGE,
        target_language=config.GLOSSA_TARGET_LANGUAGE,
        cefr_level=config.GLOSSA_CEFR_LEVEL,
        simplify=bool(config.GLOSSA_SIMPLIFY),
        auto_translate=bool(config.GLOSSA_AUTO_TRANSLATE),
    )


class SettingsStore:
    """Learner settings: defaults, then configuration, then in-process writes.

    Reading never fails; a broken configuration yields the defaults.
    """

    def __init__(self, loader: Callable[[], GlossaConfig] | None = None) -> None:
        self._loader = loader or get_settings
        self._overrides: Dict[str, Any] = {}

    def read(self) -> Settings:
        try:
            settings = settings_from_config(self._loader())
        except (GlossaError, OSError):
            settings = Settings()
        return replace(settings, **self._overrides)

    def write(self, **changes: Any) -> Settings:
        known = {item.name for item in fields(Settings)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ValueError(f"Unknown setting(s): {', '.join(unknown)}")
        level = changes.get("cefr_level")
        if level is not None:
            level = str(level).strip().upper()
            if level not in CEFR_LEVELS:
                raise ValueError(
                    f"CEFR level must be one of {', '.join(CEFR_LEVELS)}."
                )
            changes["cefr_level"] = level
        defaults = Settings()
        for name in ("native_language", "target_language"):
            if name in changes:
                cleaned = str(changes[name] or "").strip()
                changes[name] = cleaned or getattr(defaults, name)
        self._overrides.update(changes)
        return self.read()
