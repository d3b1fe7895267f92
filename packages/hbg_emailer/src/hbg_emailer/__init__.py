from .hub import EmailerHub
from .models import Distribution, Email, EmailStatus, Receiver, Sender, Template
from .routes import (
    distributions_router,
    receivers_router,
    routers,
    senders_router,
    templates_router,
)
from .seeding import seed_senders
from .service import (
    DistributionsService,
    ReceiversService,
    SendersService,
    TemplatesService,
)
from .smtp import Mailer, SmtpMailer, build_message
from .worker import DISTRIBUTION_UPDATED_EVENT, DistributionWorker, distribution_group

__all__ = [
    "DISTRIBUTION_UPDATED_EVENT",
    "Distribution",
    "DistributionWorker",
    "DistributionsService",
    "Email",
    "EmailStatus",
    "EmailerHub",
    "Mailer",
    "Receiver",
    "ReceiversService",
    "Sender",
    "SendersService",
    "SmtpMailer",
    "Template",
    "TemplatesService",
    "build_message",
    "distribution_group",
    "distributions_router",
    "receivers_router",
    "routers",
    "seed_senders",
    "senders_router",
    "templates_router",
]
