"""Configuration management."""

import os
from pathlib import Path
from typing import Tuple

from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Config(BaseModel):
    """Application configuration."""

    # API Keys
    anthropic_api_key: str = Field(
        default_factory=lambda: os.getenv("ANTHROPIC_API_KEY", ""),
        description="Anthropic API key"
    )
    google_cloud_project: str = Field(
        default_factory=lambda: os.getenv("GOOGLE_CLOUD_PROJECT", ""),
        description="Google Cloud project ID"
    )
    imagen_location: str = Field(
        default_factory=lambda: os.getenv("IMAGEN_LOCATION", "us-central1"),
        description="Vertex AI region for Imagen"
    )
    imagen_model: str = Field(
        default_factory=lambda: os.getenv("IMAGEN_MODEL", "imagen-3.0-generate-001"),
        description="Imagen model name"
    )

    # Paths
    workspace: Path = Field(
        default_factory=lambda: Path(os.getenv("SCENEREEL_WORKSPACE", ".")),
        description="Workspace directory"
    )

    # Model settings
    default_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Default Claude model"
    )

    # Render settings
    render_backend: str = Field(
        default_factory=lambda: os.getenv("SCENEREEL_RENDER_BACKEND", "moviepy"),
        description="Render backend: 'moviepy' or 'ffmpeg'"
    )
    crossfade_seconds: float = Field(
        default=1.0,
        description="Length of the crossfade between adjacent scenes",
        gt=0,
    )
    fps: int = Field(default=30, description="Output frame rate", gt=0)
    resolution: str = Field(default="1280x720", description="Output WIDTHxHEIGHT")

    # Pipeline settings
    image_workers: int = Field(
        default=4,
        description="Maximum concurrent image generations",
        ge=1,
    )
    debounce_seconds: float = Field(
        default=2.0,
        description="Quiet period before an edited script triggers a run",
        ge=0,
    )

    class Config:
        """Pydantic config."""
        frozen = False

    @property
    def images_dir(self) -> Path:
        return self.workspace / "images"

    @property
    def output_dir(self) -> Path:
        return self.workspace / "output"

    @property
    def store_path(self) -> Path:
        return self.workspace / "scenes.yaml"

    @property
    def frame_size(self) -> Tuple[int, int]:
        """Parse `resolution` into a (width, height) tuple."""
        width, _, height = self.resolution.lower().partition("x")
        return int(width), int(height)

    def validate_required(self) -> None:
        """Validate that required credentials are set."""
        if not self.anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY not set")

    def validate_imagen_required(self) -> None:
        """Validate that Imagen / Google Cloud configuration is set.

        Raises:
            ValueError: If any required Imagen configuration is missing.
        """
        if not self.google_cloud_project:
            raise ValueError(
                "Missing required Imagen configuration: GOOGLE_CLOUD_PROJECT. "
                "Set the corresponding environment variable."
            )


# Global config instance
config = Config()
