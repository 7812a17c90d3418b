from __future__ import annotations


class NotificationDeliveryError(RuntimeError):
    """Base error for a job that could not be delivered.

    The message is stored on the queue row, so it should read well on its own.
    """


class BookingNotFoundError(NotificationDeliveryError):
    """The job's booking does not exist (or the job has none)."""


class MissingContactError(NotificationDeliveryError):
    """The guest or hotel lacks the contact field a channel needs."""


class ProviderNotConfiguredError(NotificationDeliveryError):
    """A provider credential is absent from the configuration."""


class ProviderRejectedError(NotificationDeliveryError):
    """The provider answered with an error."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UnsupportedChannelError(NotificationDeliveryError):
    """The job names a channel this worker cannot send on."""


class MagicLinkError(NotificationDeliveryError):
    """The identity provider did not return a usable sign-in link."""
