"""Configuration management for resume agents"""

import os
from typing import Optional, List
from pathlib import Path
import yaml
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class ModelSpecificConfig(BaseModel):
    """Model-specific configuration"""
    api_key_env: Optional[str] = None
    base_url: Optional[str] = None
    model: Optional[str] = None
    max_tokens: int = 2048
    temperature: float = 0.3
    timeout: float = 60.0  # Seconds per backend request
    max_retries: int = 2  # Transport-level retries, owned by the SDK client


class ModelConfig(BaseModel):
    """Model configuration"""
    primary: str = "openai"
    fallback: Optional[str] = "claude"
    openai: ModelSpecificConfig = Field(
        default_factory=lambda: ModelSpecificConfig(
            api_key_env="OPENAI_API_KEY", model="gpt-4o-mini"
        )
    )
    claude: ModelSpecificConfig = Field(
        default_factory=lambda: ModelSpecificConfig(
            api_key_env="ANTHROPIC_API_KEY", model="claude-sonnet-4-5"
        )
    )


class PipelineSettings(BaseModel):
    """Critique-revise loop settings for a single pipeline"""
    max_iterations: int = Field(default=2, ge=0)
    stream: bool = False  # Stream generator output as progress events


class PipelinesConfig(BaseModel):
    """Per-pipeline loop settings"""
    summary: PipelineSettings = Field(default_factory=PipelineSettings)
    skills_sorting: PipelineSettings = Field(default_factory=PipelineSettings)
    tech_stack_sorting: PipelineSettings = Field(default_factory=PipelineSettings)
    jd_refinement: PipelineSettings = Field(default_factory=PipelineSettings)
    achievements_sorting: PipelineSettings = Field(default_factory=PipelineSettings)
    job_title: PipelineSettings = Field(default_factory=PipelineSettings)
    experience_tailoring: PipelineSettings = Field(default_factory=PipelineSettings)
    cover_letter: PipelineSettings = Field(default_factory=PipelineSettings)
    # Verifier pass only; an unusable verifier reply keeps the extractor list
    skills_extraction: PipelineSettings = Field(
        default_factory=lambda: PipelineSettings(max_iterations=0)
    )


class ApiConfig(BaseModel):
    """HTTP API configuration"""
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5000"]
    )


class Config(BaseModel):
    """Main configuration"""
    model: ModelConfig = Field(default_factory=ModelConfig)
    pipelines: PipelinesConfig = Field(default_factory=PipelinesConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    log_level: str = "INFO"

    @classmethod
    def from_yaml(cls, config_path: str = "config.yaml") -> "Config":
        """Load configuration from YAML file"""
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_file, 'r') as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    def get_api_key(self, model_type: str) -> Optional[str]:
        """Get API key for specific model type"""
        model_config = getattr(self.model, model_type, None)
        if model_config and model_config.api_key_env:
            return os.getenv(model_config.api_key_env)
        return None

    def get_pipeline(self, name: str) -> PipelineSettings:
        """
        Get loop settings for a pipeline.

        Args:
            name: Pipeline identifier (e.g., "summary", "skills_sorting")

        Returns:
            PipelineSettings for the requested pipeline

        Raises:
            ValueError: If the pipeline name is unknown
        """
        settings = getattr(self.pipelines, name, None)
        if not isinstance(settings, PipelineSettings):
            available = ", ".join(PipelinesConfig.model_fields.keys())
            raise ValueError(
                f"Pipeline '{name}' not found. Available pipelines: {available}"
            )
        return settings


# Global config instance
_config: Optional[Config] = None


def get_config(config_path: str = "config.yaml") -> Config:
    """Get or create global configuration instance"""
    global _config
    if _config is None:
        _config = Config.from_yaml(config_path)
    return _config


def reload_config(config_path: str = "config.yaml") -> Config:
    """Reload configuration from file"""
    global _config
    _config = Config.from_yaml(config_path)
    return _config
