"""Configuration dataclasses for datasleuth.

Each config is a frozen ``dataclass`` with a ``validate()`` method that
raises ``ValueError`` on invalid values, plus ``to_dict()``/``from_dict()``.
Durations are in seconds.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any

from datasleuth.domain.enums import ErrorHandling

if TYPE_CHECKING:
    from datasleuth.services.retry import RetryPolicy

# Accepted spellings from callers that use camelCase option names.
_CAMEL_ALIASES: dict[str, str] = {
    "errorHandling": "error_handling",
    "maxRetries": "max_retries",
    "retryDelay": "retry_delay",
    "backoffFactor": "backoff_factor",
    "maxResults": "max_results",
    "maxUrls": "max_urls",
    "maxContentLength": "max_content_length",
}


def _normalise_keys(data: Mapping[str, Any]) -> dict[str, Any]:
    return {_CAMEL_ALIASES.get(k, k): v for k, v in data.items()}


# ===================================================================== #
#  Pipeline Configuration                                                #
# ===================================================================== #


@dataclass(frozen=True)
class PipelineConfig:
    """Parameters of one top-level pipeline run.

    Attributes
    ----------
    error_handling:
        What the sequential executor does when a step's final attempt
        fails: ``stop``, ``continue`` or ``rollback``.
    max_retries:
        Retries per step for retryable errors.
    timeout:
        Global deadline for the whole run in seconds.  ``None`` disables it.
    retry_delay:
        Base backoff delay in seconds.
    backoff_factor:
        Backoff multiplier between retries.
    """

    error_handling: ErrorHandling = ErrorHandling.STOP
    max_retries: int = 3
    timeout: float | None = 300.0
    retry_delay: float = 1.0
    backoff_factor: float = 2.0

    def __post_init__(self) -> None:
        if isinstance(self.error_handling, str):
            object.__setattr__(self, "error_handling", ErrorHandling(self.error_handling))

    def validate(self) -> None:
        """Raise ``ValueError`` if any field is out of valid range."""
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {self.timeout}")
        if self.retry_delay < 0:
            raise ValueError(f"retry_delay must be >= 0, got {self.retry_delay}")
        if self.backoff_factor < 1:
            raise ValueError(f"backoff_factor must be >= 1, got {self.backoff_factor}")

    def retry_policy(self) -> RetryPolicy:
        from datasleuth.services.retry import RetryPolicy

        return RetryPolicy(
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            backoff_factor=self.backoff_factor,
        )

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["error_handling"] = self.error_handling.value
        return d

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PipelineConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in _normalise_keys(data).items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


def coerce_pipeline_config(config: PipelineConfig | Mapping[str, Any] | None) -> PipelineConfig:
    """Accept a ``PipelineConfig``, a plain mapping or ``None``."""
    if config is None:
        return PipelineConfig()
    if isinstance(config, PipelineConfig):
        config.validate()
        return config
    return PipelineConfig.from_dict(config)


# ===================================================================== #
#  Model Configuration                                                   #
# ===================================================================== #

_VALID_PROVIDERS = frozenset({"anthropic", "openai"})


@dataclass(frozen=True)
class ModelConfig:
    """Which chat model the CLI constructs.

    Attributes
    ----------
    provider:
        ``anthropic`` or ``openai``.
    model:
        Provider-specific model name.  Empty means the provider default.
    temperature:
        Sampling temperature.
    """

    provider: str = "anthropic"
    model: str = ""
    temperature: float = 0.4

    def validate(self) -> None:
        if self.provider not in _VALID_PROVIDERS:
            raise ValueError(
                f"provider must be one of {sorted(_VALID_PROVIDERS)}, got '{self.provider}'"
            )
        if not (0.0 <= self.temperature <= 2.0):
            raise ValueError(f"temperature must be in [0, 2], got {self.temperature}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ModelConfig:
        valid_keys = {f.name for f in fields(cls)}
        cfg = cls(**{k: v for k, v in data.items() if k in valid_keys})
        cfg.validate()
        return cfg


# ===================================================================== #
#  Research Step Configuration                                           #
# ===================================================================== #


@dataclass(frozen=True)
class ResearchConfig:
    """Options for the default research step chain.

    Attributes
    ----------
    max_results:
        Search results kept after de-duplication.
    max_urls:
        Pages fetched for content extraction.
    max_content_length:
        Characters kept per extracted page.
    fact_check_threshold:
        Minimum model confidence for a statement to count as valid.
    summary_max_length:
        Upper bound on the summary length in characters.
    summary_format:
        ``paragraph``, ``bullet`` or ``structured``.
    """

    max_results: int = 10
    max_urls: int = 5
    max_content_length: int = 5000
    fact_check_threshold: float = 0.7
    summary_max_length: int = 2000
    summary_format: str = "structured"

    def validate(self) -> None:
        if self.max_results < 1:
            raise ValueError(f"max_results must be >= 1, got {self.max_results}")
        if self.max_urls < 1:
            raise ValueError(f"max_urls must be >= 1, got {self.max_urls}")
        if self.max_content_length < 1:
            raise ValueError(
                f"max_content_length must be >= 1, got {self.max_content_length}"
            )
        if not (0.0 <= self.fact_check_threshold <= 1.0):
            raise ValueError(
                f"fact_check_threshold must be in [0, 1], got {self.fact_check_threshold}"
            )
        if self.summary_format not in ("paragraph", "bullet", "structured"):
            raise ValueError(f"unknown summary_format '{self.summary_format}'")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ResearchConfig:
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in _normalise_keys(data).items() if k in valid_keys}
        cfg = cls(**filtered)
        cfg.validate()
        return cfg


# ===================================================================== #
#  Loading                                                               #
# ===================================================================== #

_CONFIG_MAP: dict[str, type] = {
    "pipeline": PipelineConfig,
    "model": ModelConfig,
    "research": ResearchConfig,
}


def _typed_sections(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise ValueError("Top-level config must be a mapping")
    result: dict[str, Any] = {}
    for section, data in raw.items():
        cls = _CONFIG_MAP.get(section)
        if cls is not None and isinstance(data, dict):
            result[section] = cls.from_dict(data)
        else:
            result[section] = data
    return result


def load_config_from_json(json_str: str) -> dict[str, Any]:
    """Parse a JSON string into a dict of typed config objects.

    Top-level keys are section names (``pipeline``, ``model``,
    ``research``).  Unknown sections are preserved as raw values.
    """
    return _typed_sections(json.loads(json_str))


def load_config_from_yaml(yaml_str: str) -> dict[str, Any]:
    """YAML counterpart of :func:`load_config_from_json`."""
    import yaml

    return _typed_sections(yaml.safe_load(yaml_str) or {})


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load a JSON or YAML (``.yml``/``.yaml``) config file."""
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yml", ".yaml"):
        return load_config_from_yaml(text)
    return load_config_from_json(text)
