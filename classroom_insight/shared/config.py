"""
Configuration management for the classroom insight engine.
Loads from config/insight.yaml and environment variables.
"""

from pathlib import Path
from typing import Optional, Dict, Any
import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class LLMConfig(BaseSettings):
    """Text-generation provider configuration."""
    provider: str = Field(default="openai")  # openai, anthropic, ollama
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    anthropic_api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    ollama_base_url: str = Field(default="http://localhost:11434/v1", alias="OLLAMA_BASE_URL")
    default_model: str = Field(default="gpt-4o-mini")
    diagnostic_model: Optional[str] = Field(default=None)
    temperature: float = Field(default=0.2)
    max_tokens: int = Field(default=2000)

    model_config = SettingsConfigDict(env_prefix="LLM_", extra="ignore", populate_by_name=True)


class EmbeddingConfig(BaseSettings):
    """Embedding model configuration."""
    provider: str = Field(default="openai")  # openai, local
    model: str = Field(default="text-embedding-3-small", alias="EMBEDDING_MODEL")

    model_config = SettingsConfigDict(env_prefix="EMBEDDING_", extra="ignore", populate_by_name=True)


class StorageConfig(BaseSettings):
    """Relational store configuration."""
    db_path: Path = Field(default=Path("data/classroom.sqlite"), alias="STORAGE_DB_PATH")
    busy_timeout_seconds: float = Field(default=30.0)

    model_config = SettingsConfigDict(env_prefix="STORAGE_", extra="ignore", populate_by_name=True)


class AnalyticsConfig(BaseSettings):
    """Struggle scoring and clustering policy."""
    lexicon_locale: str = Field(default="es")
    lexicon_path: Optional[Path] = Field(default=None)

    socratic_weight: float = Field(default=0.25)
    persistence_weight: float = Field(default=0.35)
    frustration_weight: float = Field(default=0.40)

    struggling_threshold: float = Field(default=0.5)
    cluster_activation_threshold: float = Field(default=0.4)
    cluster_min_students: int = Field(default=2)
    critical_cell_threshold: float = Field(default=0.6)

    # Memory enrichment bounds
    enrichment_cluster_limit: int = Field(default=3)
    enrichment_students_per_cluster: int = Field(default=5)
    enrichment_excerpts_per_student: int = Field(default=2)
    enrichment_max_excerpts: int = Field(default=4)

    progress_ttl_seconds: int = Field(default=3600)

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_", extra="ignore", populate_by_name=True)

    @field_validator(
        "struggling_threshold",
        "cluster_activation_threshold",
        "critical_cell_threshold",
    )
    @classmethod
    def _threshold_in_unit_range(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("thresholds must be within [0, 1]")
        return value


class MemoryConfig(BaseSettings):
    """Semantic memory configuration."""
    enabled: bool = Field(default=True, alias="MEMORY_ENABLED")
    db_path: Path = Field(default=Path("data/memory.sqlite"), alias="MEMORY_DB_PATH")
    min_similarity: float = Field(default=0.3)
    max_candidates: int = Field(default=200)

    model_config = SettingsConfigDict(env_prefix="MEMORY_", extra="ignore", populate_by_name=True)


class DiagnosticConfig(BaseSettings):
    """Diagnostic audit generation configuration."""
    language: str = Field(default="Mexican Spanish", alias="DIAGNOSTIC_LANGUAGE")
    max_clusters: int = Field(default=5)
    max_critical_cells: int = Field(default=8)
    max_recommendations: int = Field(default=5)

    model_config = SettingsConfigDict(env_prefix="DIAGNOSTIC_", extra="ignore", populate_by_name=True)


class InsightSettings(BaseSettings):
    """Main insight engine configuration."""
    env: str = Field(default="dev", alias="INSIGHT_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[Path] = Field(default=Path("logs/insight.log"), alias="LOG_FILE")

    # Sub-configurations
    llm: LLMConfig = Field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    analytics: AnalyticsConfig = Field(default_factory=AnalyticsConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    diagnostic: DiagnosticConfig = Field(default_factory=DiagnosticConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
        populate_by_name=True
    )

    @classmethod
    def load_from_yaml(cls, config_path: Optional[Path] = None) -> "InsightSettings":
        """Load settings from YAML file and merge with environment variables."""
        if config_path is None:
            config_path = Path("config/insight.yaml")

        config_dict: Dict[str, Any] = {}

        if config_path.exists():
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f) or {}
                config_dict = yaml_data.get("insight", {})

        # Flatten analytics.weights.* into the flat weight fields
        if "analytics" in config_dict and isinstance(config_dict["analytics"], dict):
            analytics_cfg = dict(config_dict["analytics"])
            weights = analytics_cfg.pop("weights", None)
            if isinstance(weights, dict):
                for name in ("socratic", "persistence", "frustration"):
                    if name in weights:
                        analytics_cfg[f"{name}_weight"] = weights[name]
            config_dict["analytics"] = analytics_cfg

        return cls(**config_dict)


# Global settings instance
_settings: Optional[InsightSettings] = None


def get_settings() -> InsightSettings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = InsightSettings.load_from_yaml()
    return _settings


# Alias for convenience
settings = get_settings()
