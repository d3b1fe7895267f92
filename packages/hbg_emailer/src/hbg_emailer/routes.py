from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request, status
from hbg_authentication.models import User
from hbg_authorization import auth_required
from hbg_core.config import HbgSettings, get_settings
from hbg_core.schemas.parameter import LoadOptions
from hbg_core.schemas.response import LoadResult
from hbg_db import get_db, load_page
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from .schemas import (
    DistributionCreate,
    DistributionDto,
    DistributionUpdate,
    EmailingReceiverDto,
    EmailingReceiverUpdate,
    ReceiverCreate,
    ReceiverDto,
    ReceiverUpdate,
    SenderCreate,
    SenderDto,
    SenderUpdate,
    TemplateCreate,
    TemplateDto,
    TemplateUpdate,
)
from .service import (
    DistributionsService,
    OwnedResourceService,
    ReceiversService,
    SendersService,
    TemplatesService,
    distribution_dto,
)
from .worker import DistributionWorker


def owned_resource_router(
    prefix: str,
    service_class: type[OwnedResourceService],
    create_schema: type[BaseModel],
    update_schema: type[BaseModel],
    dto: type[BaseModel],
    sortable: tuple[str, ...] = ("id", "name"),
) -> APIRouter:
    """List, get, create, partially update and delete rows owned by the current user."""
    router = APIRouter(prefix=prefix, tags=[prefix.rsplit("/", 1)[-1]])

    def get_service(
        user: User = Depends(auth_required), db: AsyncSession = Depends(get_db)
    ) -> OwnedResourceService:
        return service_class(db, user.subject_id)

    @router.get("", response_model=LoadResult[dto])
    async def list_items(
        options: Annotated[LoadOptions, Query()],
        service: OwnedResourceService = Depends(get_service),
        settings: HbgSettings = Depends(get_settings),
    ):
        items, total = await load_page(
            service.db, service.visible(), options, allowed=sortable, max_take=settings.MAX_TAKE
        )
        return LoadResult[dto](data=[dto.model_validate(i) for i in items], total_count=total)

    @router.get("/{item_id}", response_model=dto)
    async def get_item(item_id: int, service: OwnedResourceService = Depends(get_service)):
        return dto.model_validate(await service.get(item_id))

    @router.post("", response_model=dto, status_code=status.HTTP_201_CREATED)
    async def create_item(
        payload: create_schema,  # type: ignore[valid-type]
        service: OwnedResourceService = Depends(get_service),
    ):
        return dto.model_validate(await service.create(payload))

    @router.put("/{item_id}", response_model=dto)
    async def update_item(
        item_id: int,
        payload: update_schema,  # type: ignore[valid-type]
        service: OwnedResourceService = Depends(get_service),
    ):
        return dto.model_validate(await service.update(item_id, payload))

    @router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_item(
        item_id: int, service: OwnedResourceService = Depends(get_service)
    ) -> None:
        await service.remove(item_id)

    return router


senders_router = owned_resource_router(
    "/api/senders",
    SendersService,
    SenderCreate,
    SenderUpdate,
    SenderDto,
    sortable=("id", "name", "address", "server_address"),
)
templates_router = owned_resource_router(
    "/api/templates", TemplatesService, TemplateCreate, TemplateUpdate, TemplateDto
)
receivers_router = owned_resource_router(
    "/api/receivers",
    ReceiversService,
    ReceiverCreate,
    ReceiverUpdate,
    ReceiverDto,
    sortable=("id", "name", "address"),
)

distributions_router = APIRouter(prefix="/api/distributions", tags=["distributions"])

DISTRIBUTION_SORTABLE_FIELDS = ("id", "name", "subject")


def get_distributions_service(
    user: User = Depends(auth_required), db: AsyncSession = Depends(get_db)
) -> DistributionsService:
    return DistributionsService(db, user.subject_id)


def get_distribution_worker(request: Request) -> DistributionWorker:
    return request.app.state.distribution_worker


@distributions_router.get("", response_model=LoadResult[DistributionDto])
async def list_distributions(
    options: Annotated[LoadOptions, Query()],
    service: DistributionsService = Depends(get_distributions_service),
    settings: HbgSettings = Depends(get_settings),
):
    qs = service.visible().prefetch_related("sender", "template", "emails")
    items, total = await load_page(
        service.db,
        qs,
        options,
        allowed=DISTRIBUTION_SORTABLE_FIELDS,
        max_take=settings.MAX_TAKE,
    )
    return LoadResult[DistributionDto](
        data=[distribution_dto(d) for d in items], total_count=total
    )


@distributions_router.get("/{distribution_id}", response_model=DistributionDto)
async def get_distribution(
    distribution_id: int,
    service: DistributionsService = Depends(get_distributions_service),
):
    return await service.get_dto(distribution_id)


@distributions_router.post(
    "", response_model=DistributionDto, status_code=status.HTTP_201_CREATED
)
async def create_distribution(
    payload: DistributionCreate,
    service: DistributionsService = Depends(get_distributions_service),
):
    return await service.create(payload)


@distributions_router.put("/{distribution_id}", response_model=DistributionDto)
async def update_distribution(
    distribution_id: int,
    payload: DistributionUpdate,
    service: DistributionsService = Depends(get_distributions_service),
):
    return await service.update(distribution_id, payload)


@distributions_router.delete("/{distribution_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_distribution(
    distribution_id: int,
    service: DistributionsService = Depends(get_distributions_service),
) -> None:
    await service.remove(distribution_id)


@distributions_router.get("/{distribution_id}/start", status_code=status.HTTP_202_ACCEPTED)
async def start_distribution(
    distribution_id: int,
    user: User = Depends(auth_required),
    worker: DistributionWorker = Depends(get_distribution_worker),
) -> dict[str, Any]:
    await worker.start(user.subject_id, distribution_id)
    return {"distribution_id": distribution_id, "started": True}


@distributions_router.get(
    "/{distribution_id}/emailingreceivers", response_model=list[EmailingReceiverDto]
)
async def list_emailing_receivers(
    distribution_id: int,
    service: DistributionsService = Depends(get_distributions_service),
):
    return await service.get_emailing_receivers(distribution_id)


@distributions_router.put(
    "/{distribution_id}/emailingreceivers/{receiver_id}",
    response_model=EmailingReceiverDto,
)
async def update_emailing_receiver(
    distribution_id: int,
    receiver_id: int,
    payload: EmailingReceiverUpdate,
    service: DistributionsService = Depends(get_distributions_service),
):
    return await service.set_receiver_assigned(distribution_id, receiver_id, payload.assigned)


routers = (senders_router, templates_router, receivers_router, distributions_router)
