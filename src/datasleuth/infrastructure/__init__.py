"""Infrastructure: configuration, component registry, external collaborators
and output-schema adapters."""

from datasleuth.infrastructure.config import (
    ModelConfig,
    PipelineConfig,
    ResearchConfig,
    coerce_pipeline_config,
    load_config_file,
    load_config_from_json,
    load_config_from_yaml,
)
from datasleuth.infrastructure.providers import (
    DEFAULT_SELECTORS,
    ContentExtractor,
    HttpContentExtractor,
    JsonFileSearchProvider,
    SearchProvider,
    extract_text,
)
from datasleuth.infrastructure.registry import ComponentRegistry, registry
from datasleuth.infrastructure.schema import SchemaValidator, as_validator

__all__ = [
    "DEFAULT_SELECTORS",
    "ComponentRegistry",
    "ContentExtractor",
    "HttpContentExtractor",
    "JsonFileSearchProvider",
    "ModelConfig",
    "PipelineConfig",
    "ResearchConfig",
    "SchemaValidator",
    "SearchProvider",
    "as_validator",
    "coerce_pipeline_config",
    "extract_text",
    "load_config_file",
    "load_config_from_json",
    "load_config_from_yaml",
    "registry",
]
