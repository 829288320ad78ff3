# ============================================================================
# JOB NOTIFIER
# ============================================================================
# STATUS: Service - Submitter notifications
# PURPOSE: Job start / progress / success / failure messages
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Notifier

The submitter hears about a job four ways: when it starts, at most twice
while inference runs (estimated time remaining), and once at the end
(success with result files, or failure with a user-safe reason).

Delivery is best-effort. A failed delivery is logged and swallowed so it
can never fail the job that triggered it.

Implementations:
    LoggingNotifier   writes notifications to the log (default)
    WebhookNotifier   POSTs each notification as JSON (httpx)
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

import httpx
from pydantic import BaseModel, Field

from core.models import Job

logger = logging.getLogger(__name__)

# Timeout: notifications are small; don't hold a job task on a slow endpoint
DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=30.0, write=10.0, pool=10.0)


class NotificationKind(str, Enum):
    STARTED = "started"
    PROGRESS = "progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Notification(BaseModel):
    """One message to a job's submitter."""

    kind: NotificationKind
    job_id: str
    job_name: Optional[str] = None
    recipient: Optional[str] = None
    message: str
    hours_remaining: Optional[int] = None
    estimated_finish: Optional[datetime] = None
    result_files: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)


def _enabled(flag: bool) -> str:
    return "Enabled" if flag else "Disabled"


def parameter_summary(job: Job) -> str:
    """Run settings echoed back to the submitter."""
    params = job.parameters
    model = params.model
    return "\n".join([
        f"Chain length: {model.chain_length} (sampled every {model.sub_sample_rate})",
        f"Substitution model: {model.substitution_model.value}"
        f" (gamma: {_enabled(model.gamma)}, invariant sites: {_enabled(model.invariant_sites)})",
        f"Clock model: {model.clock_model.value}",
        f"Tree prior: {model.tree_prior.value}",
        f"GLM features: {_enabled(params.use_glm)}",
        f"Custom predictors: {_enabled(params.predictors is not None)}",
        f"Geospatial uncertainties: {_enabled(params.use_geo_uncertainties)}",
        f"Location disjoiner level: {params.disjoiner_level.value}",
    ])


class Notifier(ABC):
    """Builds notifications; subclasses deliver them."""

    @abstractmethod
    async def deliver(self, notification: Notification) -> None:
        """Deliver one notification. May raise; callers go through send()."""

    async def send(self, notification: Notification) -> bool:
        """Deliver, logging (never raising) on failure. True if delivered."""
        try:
            await self.deliver(notification)
            return True
        except Exception as e:
            logger.error(
                f"Failed to deliver {notification.kind.value} notification "
                f"for job {notification.job_id}: {e}"
            )
            return False

    async def job_started(self, job: Job) -> bool:
        return await self.send(Notification(
            kind=NotificationKind.STARTED,
            job_id=job.job_id,
            job_name=job.job_name,
            recipient=job.reply_email,
            message=(
                f"Job {job.job_name or job.job_id} has started.\n"
                f"Job ID: {job.job_id}\n"
                f"Parameters used, for reproducibility:\n{parameter_summary(job)}"
            ),
        ))

    async def job_progress(self, job: Job, hours_remaining: int, final: bool = False) -> bool:
        finish = datetime.utcnow() + timedelta(hours=hours_remaining)
        prefix = "Final update" if final else "Update"
        return await self.send(Notification(
            kind=NotificationKind.PROGRESS,
            job_id=job.job_id,
            job_name=job.job_name,
            recipient=job.reply_email,
            message=(
                f"{prefix}: job {job.job_name or job.job_id} is estimated to "
                f"finish in about {hours_remaining} hours ({finish:%Y-%m-%d %H:%M} UTC)."
            ),
            hours_remaining=hours_remaining,
            estimated_finish=finish,
        ))

    async def job_succeeded(self, job: Job, result_files: List[str]) -> bool:
        return await self.send(Notification(
            kind=NotificationKind.SUCCEEDED,
            job_id=job.job_id,
            job_name=job.job_name,
            recipient=job.reply_email,
            message=f"Job {job.job_name or job.job_id} has finished.",
            result_files=list(result_files),
        ))

    async def job_failed(self, job: Job, reason: str) -> bool:
        return await self.send(Notification(
            kind=NotificationKind.FAILED,
            job_id=job.job_id,
            job_name=job.job_name,
            recipient=job.reply_email,
            message=f"Job {job.job_name or job.job_id} failed: {reason}",
        ))


class LoggingNotifier(Notifier):
    """Writes notifications to the log. Keeps the last few for inspection."""

    def __init__(self, keep: int = 100):
        self.keep = keep
        self.sent: List[Notification] = []

    async def deliver(self, notification: Notification) -> None:
        logger.info(
            f"NOTIFY [{notification.kind.value}] job={notification.job_id} "
            f"to={notification.recipient or '-'}: {notification.message}"
        )
        self.sent.append(notification)
        if len(self.sent) > self.keep:
            del self.sent[: len(self.sent) - self.keep]


class WebhookNotifier(Notifier):
    """POSTs notifications as JSON to a configured URL."""

    def __init__(self, url: str, timeout: Optional[httpx.Timeout] = None):
        self.url = url
        self._timeout = timeout or DEFAULT_TIMEOUT

    async def deliver(self, notification: Notification) -> None:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(self.url, json=notification.model_dump(mode="json"))
        resp.raise_for_status()
        logger.debug(f"Delivered {notification.kind.value} notification for {notification.job_id}")


def build_notifier(webhook_url: Optional[str] = None) -> Notifier:
    """Webhook notifier when a URL is configured, logging notifier otherwise."""
    if webhook_url:
        return WebhookNotifier(webhook_url)
    return LoggingNotifier()


__all__ = [
    "NotificationKind",
    "Notification",
    "Notifier",
    "LoggingNotifier",
    "WebhookNotifier",
    "build_notifier",
    "parameter_summary",
]
