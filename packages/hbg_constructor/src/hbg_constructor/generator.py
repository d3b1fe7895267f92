import uuid
from dataclasses import dataclass
from typing import Protocol

from hbg_core.exceptions import HbgError


class ImageGenerationError(HbgError):
    """Raised when no image could be produced for a configuration."""

    status_code = 503


@dataclass(frozen=True)
class GeneratedFile:
    """Where a generated image was stored."""

    url: str
    file_name: str
    thumbnail_url: str | None = None


class ImageGenerator(Protocol):
    async def generate(
        self,
        prompt: str,
        aspect_ratio: str,
        *,
        configuration_id: uuid.UUID,
        project_id: uuid.UUID,
    ) -> GeneratedFile: ...


class UnconfiguredImageGenerator:
    """Default generator of a deployment without an image backend."""

    async def generate(
        self,
        prompt: str,  # noqa: ARG002
        aspect_ratio: str,  # noqa: ARG002
        *,
        configuration_id: uuid.UUID,  # noqa: ARG002
        project_id: uuid.UUID,  # noqa: ARG002
    ) -> GeneratedFile:
        raise ImageGenerationError("Image generation is not configured")
