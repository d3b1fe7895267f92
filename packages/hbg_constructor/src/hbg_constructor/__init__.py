from .generator import (
    GeneratedFile,
    ImageGenerationError,
    ImageGenerator,
    UnconfiguredImageGenerator,
)
from .hub import ConstructorHub
from .models import (
    ChatInteraction,
    ConstructorProject,
    GeneratedImage,
    GenerationSource,
    JewelryType,
    ProjectConfiguration,
)
from .routes import router
from .service import ConstructorService, build_prompt

__all__ = [
    "ChatInteraction",
    "ConstructorHub",
    "ConstructorProject",
    "ConstructorService",
    "GeneratedFile",
    "GeneratedImage",
    "GenerationSource",
    "ImageGenerationError",
    "ImageGenerator",
    "JewelryType",
    "ProjectConfiguration",
    "UnconfiguredImageGenerator",
    "build_prompt",
    "router",
]
