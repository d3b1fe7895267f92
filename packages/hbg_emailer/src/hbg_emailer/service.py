import logging
from collections import Counter
from typing import Any, ClassVar, Generic, TypeVar

from hbg_core.exceptions import AccessDeniedException, NotFoundException
from hbg_db import apply_partial
from hbg_db.queryset import QuerySet
from pydantic import BaseModel
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    SHARED_OWNER,
    Distribution,
    Email,
    EmailStatus,
    Receiver,
    Sender,
    Template,
    aggregate_status,
)
from .schemas import DistributionDto, DistributionProgress, EmailingReceiverDto

logger = logging.getLogger(__name__)

T = TypeVar("T", Sender, Template, Receiver)


class OwnedResourceService(Generic[T]):
    """
    CRUD over rows that carry the owner's `user_id`.

    Rows of other users are reported as missing, never as forbidden.
    """

    model: ClassVar[type]
    label: ClassVar[str]

    def __init__(self, db: AsyncSession, user_id: str):
        self.db = db
        self.user_id = user_id

    def visible(self) -> QuerySet[T]:
        return self.model.objects.filter(user_id=self.user_id)

    async def get(self, pk: int) -> T:
        item = await self.visible().filter(id=pk).first(self.db)
        if item is None:
            raise NotFoundException(f"{self.label} {pk} not found")
        return item

    async def get_owned(self, pk: int) -> T:
        return await self.get(pk)

    async def create(self, dto: BaseModel) -> T:
        item = self.model(user_id=self.user_id, **dto.model_dump())
        self.db.add(item)
        await self.db.commit()
        await self.db.refresh(item)
        logger.info("User %s created %s %s", self.user_id, self.label.lower(), item.id)
        return item

    async def update(self, pk: int, values: BaseModel | dict[str, Any]) -> T:
        item = await self.get_owned(pk)
        apply_partial(item, values, exclude=("id", "user_id"))
        await self.db.commit()
        await self.db.refresh(item)
        return item

    async def remove(self, pk: int) -> None:
        item = await self.get_owned(pk)
        await self.model.objects.delete_by_pk(self.db, item.id)
        logger.info("User %s removed %s %s", self.user_id, self.label.lower(), pk)


class SendersService(OwnedResourceService[Sender]):
    """Senders of the user plus the shared ones, which only their seeder may change."""

    model = Sender
    label = "Sender"

    def visible(self) -> QuerySet[Sender]:
        return Sender.objects.filter(
            or_(Sender.user_id == self.user_id, Sender.user_id == SHARED_OWNER)
        )

    async def get_owned(self, pk: int) -> Sender:
        sender = await self.get(pk)
        if sender.user_id != self.user_id:
            raise AccessDeniedException("Shared senders are read-only")
        return sender


class TemplatesService(OwnedResourceService[Template]):
    model = Template
    label = "Template"


class ReceiversService(OwnedResourceService[Receiver]):
    model = Receiver
    label = "Receiver"


def distribution_dto(distribution: Distribution) -> DistributionDto:
    """Expects `sender`, `template` and `emails` to be loaded."""
    return DistributionDto(
        id=distribution.id,
        sender_id=distribution.sender_id,
        template_id=distribution.template_id,
        name=distribution.name,
        subject=distribution.subject,
        sender_name=distribution.sender.name if distribution.sender else None,
        template_name=distribution.template.name if distribution.template else None,
        status=aggregate_status(email.status for email in distribution.emails),
        emails_count=len(distribution.emails),
    )


class DistributionsService:
    """
    Distributions of one user and the receivers assigned to them.

    A distribution belongs to the owner of its template.
    """

    def __init__(self, db: AsyncSession, user_id: str):
        self.db = db
        self.user_id = user_id

    def visible(self) -> QuerySet[Distribution]:
        return Distribution.objects.filter(
            Distribution.template.has(Template.user_id == self.user_id)
        )

    async def get_distributions(self) -> list[DistributionDto]:
        distributions = (
            await self.visible()
            .prefetch_related("sender", "template", "emails")
            .order_by("id")
            .fetch(self.db)
        )
        return [distribution_dto(d) for d in distributions]

    async def get(self, pk: int, *, with_details: bool = False) -> Distribution:
        qs = self.visible().filter(id=pk)
        if with_details:
            qs = qs.prefetch_related("sender", "template", "emails.receiver")
        distribution = await qs.first(self.db)
        if distribution is None:
            raise NotFoundException(f"Distribution {pk} not found")
        return distribution

    async def get_dto(self, pk: int) -> DistributionDto:
        return distribution_dto(await self.get(pk, with_details=True))

    async def _check_references(self, sender_id: int | None, template_id: int | None) -> None:
        if sender_id is not None:
            await SendersService(self.db, self.user_id).get(sender_id)
        if template_id is not None:
            await TemplatesService(self.db, self.user_id).get(template_id)

    async def create(self, dto: BaseModel) -> DistributionDto:
        values = dto.model_dump()
        await self._check_references(values["sender_id"], values["template_id"])
        distribution = Distribution(**values)
        self.db.add(distribution)
        await self.db.commit()
        pk = distribution.id
        self.db.expire(distribution)
        logger.info("User %s created distribution %s", self.user_id, pk)
        return await self.get_dto(pk)

    async def update(self, pk: int, values: BaseModel | dict[str, Any]) -> DistributionDto:
        distribution = await self.get(pk)
        changes = apply_partial(distribution, values)
        await self._check_references(changes.get("sender_id"), changes.get("template_id"))
        await self.db.commit()
        self.db.expire(distribution)
        return await self.get_dto(pk)

    async def remove(self, pk: int) -> None:
        await self.get(pk)
        await Distribution.objects.delete_by_pk(self.db, pk)
        logger.info("User %s removed distribution %s", self.user_id, pk)

    # --- Emailing receivers ---

    async def get_emailing_receivers(self, distribution_id: int) -> list[EmailingReceiverDto]:
        await self.get(distribution_id)
        assigned = {
            email.receiver_id
            for email in await Email.objects.filter(distribution_id=distribution_id).fetch(
                self.db
            )
        }
        receivers = await ReceiversService(self.db, self.user_id).visible().order_by(
            "id"
        ).fetch(self.db)
        return [
            EmailingReceiverDto(
                id=r.id, name=r.name, address=r.address, assigned=r.id in assigned
            )
            for r in receivers
        ]

    async def set_receiver_assigned(
        self, distribution_id: int, receiver_id: int, assigned: bool
    ) -> EmailingReceiverDto:
        """Add or remove the email of one receiver; both directions are idempotent."""
        await self.get(distribution_id)
        receiver = await ReceiversService(self.db, self.user_id).get(receiver_id)
        emails = Email.objects.filter(distribution_id=distribution_id, receiver_id=receiver_id)
        if assigned:
            if not await emails.exists(self.db):
                self.db.add(
                    Email(
                        distribution_id=distribution_id,
                        receiver_id=receiver_id,
                        status=EmailStatus.NONE,
                    )
                )
        else:
            await emails.delete(self.db)
        await self.db.commit()
        return EmailingReceiverDto(
            id=receiver.id, name=receiver.name, address=receiver.address, assigned=assigned
        )


async def distribution_progress(db: AsyncSession, distribution_id: int) -> DistributionProgress:
    emails = await Email.objects.filter(distribution_id=distribution_id).fetch(db)
    counts = Counter(email.status for email in emails)
    return DistributionProgress(
        distribution_id=distribution_id,
        emails_sent=counts[EmailStatus.SENT],
        emails_pending=counts[EmailStatus.PENDING],
        emails_error=counts[EmailStatus.ERROR],
    )
