"""
Best-effort webhook notifications for batch job progress.

One POST per checkpoint, no retries. Delivery failures are logged and
reported through the return value; they never propagate into the job.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from suburbmates.core.exceptions import WebhookDeliveryError


logger = logging.getLogger(__name__)


class WebhookNotifier:
    """
    POSTs JSON payloads to caller-supplied webhook URLs.

    Args:
        timeout: Seconds allowed per delivery attempt.
        transport: Optional httpx transport, used by tests to capture requests.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout
        self._transport = transport

    async def _post(self, url: str, payload: Dict[str, Any]) -> None:
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
        except httpx.TimeoutException as e:
            raise WebhookDeliveryError(f"Webhook to {url} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise WebhookDeliveryError(f"Webhook to {url} failed: {e}") from e
        except httpx.InvalidURL as e:
            raise WebhookDeliveryError(f"Webhook URL {url!r} is invalid: {e}") from e

        if response.status_code >= 400:
            raise WebhookDeliveryError(
                f"Webhook to {url} returned status {response.status_code}"
            )

    async def send(self, url: str, payload: Dict[str, Any]) -> bool:
        """
        Deliver one payload.

        Returns:
            True when the endpoint accepted it, False on any failure.
        """
        try:
            await self._post(url, payload)
        except WebhookDeliveryError as e:
            logger.warning(f"{e.message} (job {payload.get('jobId')})")
            return False

        logger.debug(f"Webhook delivered to {url} for job {payload.get('jobId')}")
        return True
