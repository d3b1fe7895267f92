import logging
import uuid
from typing import Annotated, Any

from hbg_core.exceptions import AccessDeniedException
from hbg_hub import RECEIVE_ERROR_EVENT, ConnectionManager, Hub, HubContext, hub_method
from pydantic import StringConstraints, TypeAdapter, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .generator import ImageGenerator
from .models import GenerationSource, utcnow
from .service import ConstructorService

logger = logging.getLogger(__name__)

CHAT_RESPONSE_EVENT = "ReceiveChatResponse"
IMAGE_UPDATE_EVENT = "ReceiveImageUpdate"
GENERATION_STARTED_EVENT = "GenerationStarted"

CHAT_NOT_IMPLEMENTED = (
    "Message received. AI processing is not yet implemented. "
    "Please use the configuration form to generate images."
)

_uuid_adapter = TypeAdapter(uuid.UUID)
_message_adapter = TypeAdapter(Annotated[str, StringConstraints(max_length=2000)])


class ConstructorHub(Hub):
    """
    Chat and image notifications of the jewelry constructor.

    Failures are not reported as error completions: the caller receives a
    `ReceiveError` event with a human readable message instead.
    """

    name = "constructor"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        manager: ConnectionManager | None = None,
        generator: ImageGenerator | None = None,
    ) -> None:
        super().__init__(session_factory, manager)
        self.generator = generator

    async def _error(self, ctx: HubContext, message: str) -> None:
        await ctx.reply(RECEIVE_ERROR_EVENT, {"message": message})

    @hub_method("SendChatMessage")
    async def send_chat_message(self, ctx: HubContext, project_id: Any, message: Any) -> None:
        service = ConstructorService(ctx.db, self.generator)
        try:
            project = await service.get_project(
                _uuid_adapter.validate_python(project_id), ctx.user_id
            )
        except (AccessDeniedException, ValidationError):
            await self._error(ctx, "Project not found or access denied")
            return

        try:
            text = _message_adapter.validate_python(message)
            await service.record_chat(project.id, ctx.user_id, text, CHAT_NOT_IMPLEMENTED)
        except Exception:
            logger.exception("Error processing chat message for project %s", project.id)
            await self._error(ctx, "An error occurred while processing your message")
            return

        await ctx.reply(
            CHAT_RESPONSE_EVENT,
            {"message": CHAT_NOT_IMPLEMENTED, "user_message": text, "timestamp": utcnow()},
        )

    @hub_method("RegenerateImage")
    async def regenerate_image(self, ctx: HubContext, configuration_id: Any) -> None:
        service = ConstructorService(ctx.db, self.generator)
        try:
            configuration = await service.get_configuration(
                _uuid_adapter.validate_python(configuration_id), ctx.user_id
            )
        except (AccessDeniedException, ValidationError):
            await self._error(ctx, "Configuration not found or access denied")
            return

        try:
            image = await service.generate_and_save_image(
                configuration.id, "1:1", GenerationSource.REGENERATE
            )
        except Exception as e:
            logger.exception("Error regenerating image for configuration %s", configuration.id)
            await self._error(ctx, f"An error occurred while generating the image: {e}")
            return

        await ctx.send_to_user(
            IMAGE_UPDATE_EVENT,
            {
                "image_id": image.id,
                "configuration_id": image.configuration_id,
                "image_url": image.file_service_url,
                "thumbnail_url": image.thumbnail_url,
                "generated_at": image.generated_at,
                "message": "Image generated successfully",
            },
        )

    @hub_method("NotifyGenerationStarted")
    async def notify_generation_started(self, ctx: HubContext, project_id: Any) -> None:
        await ctx.send_to_user(
            GENERATION_STARTED_EVENT,
            {
                "project_id": _uuid_adapter.validate_python(project_id),
                "message": "Image generation started",
            },
        )
