"""Notification queue draining: claim, render, send and record outcomes."""

from .channels import EmailSender, WhatsAppSender
from .errors import (
    BookingNotFoundError,
    MagicLinkError,
    MissingContactError,
    NotificationDeliveryError,
    ProviderNotConfiguredError,
    ProviderRejectedError,
    UnsupportedChannelError,
)
from .identity import MagicLinkIssuer
from .models import (
    BookingContact,
    Channel,
    DispatchSummary,
    EmailContent,
    FailureOutcome,
    JobResult,
    JobStatus,
    NotificationJob,
)
from .repository import NotificationRepository
from .worker import DispatchWorker

__all__ = [
    "BookingContact",
    "BookingNotFoundError",
    "Channel",
    "DispatchSummary",
    "DispatchWorker",
    "EmailContent",
    "EmailSender",
    "FailureOutcome",
    "JobResult",
    "JobStatus",
    "MagicLinkError",
    "MagicLinkIssuer",
    "MissingContactError",
    "NotificationDeliveryError",
    "NotificationJob",
    "NotificationRepository",
    "ProviderNotConfiguredError",
    "ProviderRejectedError",
    "UnsupportedChannelError",
    "WhatsAppSender",
]
