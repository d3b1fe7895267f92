import enum
from typing import Iterable

from hbg_db.models import Model
from sqlalchemy import Enum, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

# user_id of senders shared with every user
SHARED_OWNER = "*"


class EmailStatus(str, enum.Enum):
    NONE = "NONE"
    PENDING = "PENDING"
    SENT = "SENT"
    ERROR = "ERROR"


def aggregate_status(statuses: Iterable[EmailStatus]) -> EmailStatus:
    """
    Status of a distribution derived from its emails.

    ERROR wins over PENDING; SENT needs at least one email and all of them sent.
    """
    statuses = list(statuses)
    if EmailStatus.ERROR in statuses:
        return EmailStatus.ERROR
    if EmailStatus.PENDING in statuses:
        return EmailStatus.PENDING
    if statuses and all(s == EmailStatus.SENT for s in statuses):
        return EmailStatus.SENT
    return EmailStatus.NONE


class Sender(Model):
    __tablename__ = "senders"

    user_id: Mapped[str] = mapped_column(String(50), index=True)
    name: Mapped[str] = mapped_column(String(100))
    address: Mapped[str] = mapped_column(String(100))
    server_address: Mapped[str] = mapped_column(String(100))
    login: Mapped[str | None] = mapped_column(String(100), nullable=True)
    passcode: Mapped[str] = mapped_column(String(100))

    distributions: Mapped[list["Distribution"]] = relationship(
        back_populates="sender", passive_deletes=True
    )


class Template(Model):
    __tablename__ = "templates"

    user_id: Mapped[str] = mapped_column(String(50), index=True)
    name: Mapped[str] = mapped_column(String(100))
    content: Mapped[str] = mapped_column(Text, default="")

    distributions: Mapped[list["Distribution"]] = relationship(
        back_populates="template", passive_deletes=True
    )


class Receiver(Model):
    __tablename__ = "receivers"

    user_id: Mapped[str] = mapped_column(String(50), index=True)
    name: Mapped[str] = mapped_column(String(100))
    address: Mapped[str] = mapped_column(String(100))

    emails: Mapped[list["Email"]] = relationship(
        back_populates="receiver", passive_deletes=True
    )


class Distribution(Model):
    """A batch of emails built from one template and sent through one sender."""

    __tablename__ = "distributions"

    sender_id: Mapped[int] = mapped_column(
        ForeignKey("senders.id", ondelete="CASCADE"), index=True
    )
    template_id: Mapped[int] = mapped_column(
        ForeignKey("templates.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(100))
    subject: Mapped[str] = mapped_column(String(100), default="")

    sender: Mapped[Sender] = relationship(back_populates="distributions")
    template: Mapped[Template] = relationship(back_populates="distributions")
    emails: Mapped[list["Email"]] = relationship(
        back_populates="distribution",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Email.id",
    )


class Email(Model):
    __tablename__ = "emails"
    __table_args__ = (
        UniqueConstraint("distribution_id", "receiver_id", name="uq_email_distribution_receiver"),
    )

    distribution_id: Mapped[int] = mapped_column(
        ForeignKey("distributions.id", ondelete="CASCADE"), index=True
    )
    receiver_id: Mapped[int] = mapped_column(
        ForeignKey("receivers.id", ondelete="CASCADE"), index=True
    )
    status: Mapped[EmailStatus] = mapped_column(
        Enum(EmailStatus, name="email_status"), default=EmailStatus.NONE
    )

    distribution: Mapped[Distribution] = relationship(back_populates="emails")
    receiver: Mapped[Receiver] = relationship(back_populates="emails")
