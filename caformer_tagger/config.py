"""
Configuration management for the CAFormer Tagger.
"""

import json
from typing import Optional, List, Union
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with validation."""

    # Default input files (used by the CLI when no path is given)
    model_path: Optional[str] = Field(default=None, description="ONNX model file")
    tags_path: Optional[str] = Field(default=None, description="selected_tags.csv")
    config_path: Optional[str] = Field(default=None, description="config.json holding the output map")

    # Model I/O names
    input_name: str = Field(default="input")
    output_name: str = Field(default="prediction")

    # Preprocessing geometry
    pad_size: int = Field(default=512, gt=0)
    image_size: int = Field(default=384, gt=0)

    # Result limits
    general_limit: int = Field(default=50, gt=0)
    character_limit: int = Field(default=30, gt=0)

    # Runtime Configuration
    onnx_providers: Union[List[str], str] = Field(default=["CPUExecutionProvider"])
    request_timeout: float = Field(default=30.0, gt=0.0)  # Network image fetch

    # Logging Configuration
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_prefix="TAGGER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure the log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"TAGGER_LOG_LEVEL must be one of: {valid_levels}")
        return v.upper()

    @field_validator("onnx_providers", mode="before")
    @classmethod
    def parse_providers(cls, v):
        """Parse execution providers from JSON or comma-separated format."""
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return ["CPUExecutionProvider"]
            # Support JSON array format
            if v.startswith('[') and v.endswith(']'):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    raise ValueError("Invalid JSON format for TAGGER_ONNX_PROVIDERS")
            # Support comma-separated format
            return [provider.strip() for provider in v.split(',') if provider.strip()]
        return v

    def get_providers(self) -> List[str]:
        """Get the execution providers as a list."""
        if isinstance(self.onnx_providers, str):
            return [self.onnx_providers]
        return list(self.onnx_providers)


# Global settings instance
settings = Settings()
