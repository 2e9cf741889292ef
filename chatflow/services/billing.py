"""Usage reporting to the billing collaborator."""

import math
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from ..config import Settings, settings as default_settings
from ..models.chat import UsageRecord
from ..utils.logger import get_app_logger


TOKENS_PER_POINT = 10


def usage_points(total_tokens: int) -> int:
    """Points charged for a reply."""
    return math.ceil(total_tokens / TOKENS_PER_POINT)


class BillingCollaborator(ABC):
    """Consumer of per-reply usage records."""

    @abstractmethod
    async def process_usage(self, record: UsageRecord) -> None:
        """Record usage for one assistant reply."""
        pass

    async def close(self):
        pass


class LoggingBillingCollaborator(BillingCollaborator):
    """Logs usage without reporting it anywhere."""

    def __init__(self):
        self.logger = get_app_logger()

    async def process_usage(self, record: UsageRecord) -> None:
        self.logger.info(
            f"Usage: model={record.model} tokens={record.total_tokens} "
            f"points={usage_points(record.total_tokens)} conversation={record.conversation_id}"
        )


class HttpBillingClient(BillingCollaborator):
    """POSTs usage records to a billing endpoint."""

    def __init__(
        self,
        settings: Settings = default_settings,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.endpoint = settings.billing_endpoint
        self.logger = get_app_logger()
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=httpx.Timeout(10.0))

    async def process_usage(self, record: UsageRecord) -> None:
        payload = record.model_dump(mode="json")
        payload["points"] = usage_points(record.total_tokens)
        response = await self.client.post(self.endpoint, json=payload)
        response.raise_for_status()
        self.logger.info(
            f"Reported usage for message {record.message_id}: "
            f"{record.total_tokens} tokens, {payload['points']} points"
        )

    async def close(self):
        if self._owns_client:
            await self.client.aclose()


def create_billing_collaborator(settings: Settings = default_settings) -> BillingCollaborator:
    """Pick the billing collaborator for the configured endpoint."""
    if settings.billing_endpoint:
        return HttpBillingClient(settings)
    return LoggingBillingCollaborator()


async def report_usage(billing: Optional[BillingCollaborator], record: Optional[UsageRecord]) -> None:
    """
    Forward usage without ever failing the caller.

    Billing is fire-and-forget for delivery: any failure is logged.
    """
    if billing is None or record is None or record.total_tokens <= 0:
        return
    try:
        await billing.process_usage(record)
    except Exception as e:
        get_app_logger().warning(f"Usage reporting failed for message {record.message_id}: {e}")
