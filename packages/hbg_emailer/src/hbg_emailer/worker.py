import asyncio
import logging

from hbg_hub import ConnectionManager
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import Distribution, Email, EmailStatus
from .service import DistributionsService, distribution_progress
from .smtp import MailerFactory, SmtpMailer, build_message

logger = logging.getLogger(__name__)

DISTRIBUTION_UPDATED_EVENT = "DistributionUpdated"


def distribution_group(distribution_id: int) -> str:
    return f"distribution:{distribution_id}"


class DistributionWorker:
    """
    Sends distributions in background tasks, one SMTP session per run.

    Emails already SENT are skipped, so starting a distribution again only
    sends what is left. On the first failure the email being sent becomes
    ERROR, the rest of the batch goes back to NONE and the run stops. A run
    cancelled by `shutdown(wait=False)` resets its PENDING emails to NONE.

    Examples:
        >>> worker = DistributionWorker(get_session_factory(), manager)
        >>> await worker.start(user.subject_id, 4)
        >>> await worker.shutdown(wait=True)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        manager: ConnectionManager | None = None,
        mailer_factory: MailerFactory = SmtpMailer.for_sender,
    ):
        self.session_factory = session_factory
        self.manager = manager or ConnectionManager()
        self.mailer_factory = mailer_factory
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def running(self) -> int:
        return len(self._tasks)

    async def start(self, user_id: str, distribution_id: int) -> asyncio.Task[None]:
        """Check the distribution belongs to the user, then send it in the background."""
        async with self.session_factory() as db:
            await DistributionsService(db, user_id).get(distribution_id)

        task = asyncio.create_task(
            self.run(distribution_id), name=f"distribution-{distribution_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def shutdown(self, wait: bool = True) -> None:
        tasks = list(self._tasks)
        if not tasks:
            return
        if not wait:
            for task in tasks:
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def run(self, distribution_id: int) -> None:
        try:
            await self._run(distribution_id)
        except asyncio.CancelledError:
            await self._release(distribution_id)
            raise

    async def _run(self, distribution_id: int) -> None:
        async with self.session_factory() as db:
            distribution = (
                await Distribution.objects.filter(id=distribution_id)
                .prefetch_related("sender", "template", "emails.receiver")
                .first(db)
            )
            if distribution is None:
                logger.warning("Distribution %s disappeared before sending", distribution_id)
                return

            pending = [e for e in distribution.emails if e.status != EmailStatus.SENT]
            logger.info(
                "Distribution %s started with %d emails to send", distribution_id, len(pending)
            )
            if not pending:
                await self._broadcast(db, distribution_id)
                return

            for email in pending:
                email.status = EmailStatus.PENDING
            await db.commit()
            await self._broadcast(db, distribution_id)

            try:
                await self._send_all(db, distribution, pending)
            except Exception:
                logger.exception("Distribution %s stopped on a failed send", distribution_id)
                self._fail(pending)
                await db.commit()
                await self._broadcast(db, distribution_id)
                return

        logger.info("Distribution %s finished", distribution_id)

    async def _send_all(
        self, db: AsyncSession, distribution: Distribution, pending: list[Email]
    ) -> None:
        sender = distribution.sender
        async with self.mailer_factory(sender) as mailer:
            for email in pending:
                message = build_message(
                    sender, email.receiver, distribution.subject, distribution.template.content
                )
                await mailer.send(message)
                email.status = EmailStatus.SENT
                await db.commit()
                await self._broadcast(db, distribution.id)

    @staticmethod
    def _fail(pending: list[Email]) -> None:
        # the first unsent email is the one that failed, or would have been next
        failed = False
        for email in pending:
            if email.status != EmailStatus.PENDING:
                continue
            if not failed:
                email.status = EmailStatus.ERROR
                failed = True
            else:
                email.status = EmailStatus.NONE

    async def _release(self, distribution_id: int) -> None:
        """Put the emails a cancelled run left PENDING back to NONE."""
        async with self.session_factory() as db:
            result = await db.execute(
                update(Email)
                .where(
                    Email.distribution_id == distribution_id,
                    Email.status == EmailStatus.PENDING,
                )
                .values(status=EmailStatus.NONE)
            )
            await db.commit()
            logger.warning(
                "Distribution %s cancelled, %d unsent emails reset",
                distribution_id,
                getattr(result, "rowcount", 0),
            )
            await self._broadcast(db, distribution_id)

    async def _broadcast(self, db: AsyncSession, distribution_id: int) -> None:
        progress = await distribution_progress(db, distribution_id)
        await self.manager.send_to_group(
            distribution_group(distribution_id),
            DISTRIBUTION_UPDATED_EVENT,
            progress.model_dump(),
        )
