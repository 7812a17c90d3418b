"""Notification dispatch worker.

One cycle repeatedly claims a batch of due jobs, delivers each one in claim
order and records the outcome, until the queue is empty or the runtime budget
is spent. A job that fails never stops the batch; a failing claim ends the
cycle and is reported in the summary instead of being raised.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable
from uuid import uuid4

import httpx
from opentelemetry import trace

from hotel_ops.core.config import Settings
from hotel_ops.core.logging import log_context

from .channels import EmailSender, WhatsAppSender
from .errors import (
    BookingNotFoundError,
    MissingContactError,
    NotificationDeliveryError,
    UnsupportedChannelError,
)
from .identity import MagicLinkIssuer
from .models import BookingContact, Channel, DispatchSummary, JobResult, JobStatus, NotificationJob
from .repository import NotificationRepository
from .templates import render_email, render_whatsapp

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class DispatchWorker:
    repository: NotificationRepository
    whatsapp: WhatsAppSender
    email: EmailSender
    magic_links: MagicLinkIssuer
    email_from: str = "onboarding@resend.dev"
    public_base_url: str = "http://localhost:5173"
    magic_link_templates: tuple[str, ...] = ("guest_login_link",)
    retry_backoff: timedelta = timedelta(minutes=5)
    max_retries: int | None = 10
    lease_seconds: int = 300
    clock: Callable[[], datetime] = field(default=_utcnow)
    monotonic: Callable[[], float] = field(default=time.monotonic)
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep)

    @classmethod
    def from_settings(
        cls,
        repository: NotificationRepository,
        client: httpx.AsyncClient,
        settings: Settings,
    ) -> "DispatchWorker":
        return cls(
            repository=repository,
            whatsapp=WhatsAppSender(client, settings.whatsapp_token, settings.whatsapp_api_base),
            email=EmailSender(client, settings.resend_api_key, settings.resend_api_base),
            magic_links=MagicLinkIssuer(client, settings.identity_url, settings.identity_service_key),
            email_from=settings.email_from,
            public_base_url=settings.public_base_url,
            magic_link_templates=tuple(settings.magic_link_templates),
            retry_backoff=timedelta(seconds=settings.notification_retry_backoff_seconds),
            max_retries=settings.notification_max_retries,
            lease_seconds=settings.notification_claim_lease_seconds,
        )

    async def run_cycle(
        self,
        *,
        max_runtime_ms: int,
        batch_size: int,
        inter_batch_delay_ms: int = 0,
    ) -> DispatchSummary:
        if batch_size <= 0:
            raise ValueError("batch_size must be greater than zero")

        summary = DispatchSummary()
        started = self.monotonic()
        with log_context(cycle=uuid4().hex[:8]), tracer.start_as_current_span("notifications.dispatch_cycle") as span:
            while self._within_budget(started, max_runtime_ms):
                try:
                    jobs = await self.repository.claim_pending(
                        batch_size,
                        lease_seconds=self.lease_seconds,
                        max_retries=self.max_retries,
                    )
                except Exception as exc:
                    logger.error("Claiming notifications failed: %s", exc)
                    summary.error = f"Claim failed: {exc}"
                    break

                if not jobs:
                    logger.debug("Notification queue empty")
                    break

                for job in jobs:
                    result = await self.process_job(job)
                    summary.results.append(result)
                    if result.status == JobStatus.SENT.value:
                        summary.processed += 1

                # A short batch means the queue is drained; the next claim comes back empty.
                if len(jobs) < batch_size or inter_batch_delay_ms <= 0:
                    continue
                if self._within_budget(started, max_runtime_ms):
                    await self.sleep(inter_batch_delay_ms / 1000)

            span.set_attribute("notifications.claimed", summary.claimed)
            span.set_attribute("notifications.sent", summary.processed)
            logger.info(
                "Dispatch cycle finished: %d claimed, %d sent%s",
                summary.claimed,
                summary.processed,
                f", error: {summary.error}" if summary.error else "",
            )
        return summary

    def _within_budget(self, started: float, max_runtime_ms: int) -> bool:
        return (self.monotonic() - started) * 1000 < max_runtime_ms

    async def process_job(self, job: NotificationJob) -> JobResult:
        with log_context(job=job.id, channel=job.channel), tracer.start_as_current_span(
            "notifications.dispatch_job"
        ) as span:
            span.set_attribute("notification.id", str(job.id))
            span.set_attribute("notification.channel", job.channel)
            span.set_attribute("notification.template", job.template_code)
            try:
                await self._deliver(job)
            except Exception as exc:
                span.record_exception(exc)
                return await self._record_failure(job, exc)

            try:
                await self.repository.mark_sent(job.id)
            except Exception as exc:
                # Delivered but unrecorded: the claim lease expires and the job is retried.
                logger.error("Notification %s sent but could not be marked sent: %s", job.id, exc)
                return JobResult(id=job.id, status=JobStatus.PROCESSING.value, error=f"mark_sent failed: {exc}")

            logger.info("Notification %s sent via %s (%s)", job.id, job.channel, job.template_code)
        return JobResult(id=job.id, status=JobStatus.SENT.value)

    async def _deliver(self, job: NotificationJob) -> None:
        contact = await self._resolve_contact(job)
        payload = dict(job.payload)
        guest_name = payload.get("guest_name") or contact.guest_name

        if job.template_code in self.magic_link_templates:
            if not contact.email:
                raise MissingContactError("Guest email missing")
            payload["link"] = await self.magic_links.generate(
                contact.email,
                redirect_to=payload.get("redirect_to") or self.public_base_url,
            )

        if job.channel == Channel.WHATSAPP.value:
            if not contact.wa_phone_number_id:
                raise MissingContactError("Hotel WhatsApp ID not configured")
            if not contact.phone:
                raise MissingContactError("Guest phone missing")
            body = render_whatsapp(
                job.template_code,
                payload,
                guest_name=guest_name,
                hotel_name=contact.hotel_name,
                public_base_url=self.public_base_url,
            )
            await self.whatsapp.send_text(contact.wa_phone_number_id, contact.phone, body)
        elif job.channel == Channel.EMAIL.value:
            if not contact.email:
                raise MissingContactError("Guest email missing")
            content = render_email(
                job.template_code,
                payload,
                guest_name=guest_name,
                hotel_name=contact.hotel_name,
                public_base_url=self.public_base_url,
            )
            await self.email.send(sender=self.email_from, to=contact.email, subject=content.subject, html=content.html)
        else:
            raise UnsupportedChannelError(f"Unsupported channel: {job.channel}")

    async def _resolve_contact(self, job: NotificationJob) -> BookingContact:
        if job.booking_id is None:
            raise BookingNotFoundError("Booking not found")
        contact = await self.repository.fetch_contact(job.booking_id)
        if contact is None:
            raise BookingNotFoundError("Booking not found")
        return contact

    async def _record_failure(self, job: NotificationJob, exc: Exception) -> JobResult:
        message = str(exc) if isinstance(exc, NotificationDeliveryError) else f"{type(exc).__name__}: {exc}"
        logger.warning("Notification %s failed (attempt %d): %s", job.id, job.retry_count + 1, message)
        next_attempt_at = self.clock() + self.retry_backoff
        try:
            outcome = await self.repository.mark_failed(
                job.id,
                message,
                next_attempt_at=next_attempt_at,
                max_retries=self.max_retries,
            )
        except Exception as mark_exc:
            logger.error("Notification %s failure could not be recorded: %s", job.id, mark_exc)
            return JobResult(id=job.id, status=JobStatus.PROCESSING.value, error=message)

        return JobResult(
            id=job.id,
            status=outcome.status.value,
            error=message,
            retry_count=outcome.retry_count,
            next_attempt_at=outcome.next_attempt_at,
        )
