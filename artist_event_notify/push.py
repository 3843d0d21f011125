"""
Push notification delivery.
"""
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from .errors import PushDeliveryError
from .models import KnownEvent, PushConfig, PushMessage, SendResult
from .schemas import ExpoPushResponse

logger = logging.getLogger(__name__)

INVALID_TOKEN_ERRORS = {"DeviceNotRegistered", "InvalidCredentials"}


def build_event_message(event: KnownEvent) -> PushMessage:
    """Build the "new event" push message for a known event."""
    return PushMessage(
        title=f"🎵 {event.artist_name} is coming!",
        body=f"{event.event_name} - {event.venue_name}",
        data={"eventId": event.upstream_event_id},
    )


def _mask(token: str) -> str:
    return token if len(token) <= 16 else f"{token[:12]}…{token[-4:]}"


class PushService:
    """Base class for push delivery services.

    ``send`` never raises: a provider or transport error becomes a failed
    ``SendResult`` so callers can carry on with the next recipient. There is
    no retry here; an unrecorded failure is picked up by the next sync.
    """

    def __init__(self, config: PushConfig):
        self.config = config

    async def send(
        self,
        push_token: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> SendResult:
        if not push_token:
            raise ValueError("push_token is required")
        try:
            return await self._send_impl(push_token, title, body, data or {})
        except PushDeliveryError as e:
            logger.warning(f"Push to {_mask(push_token)} rejected: {e}")
            return SendResult(success=False, error=str(e), invalid_token=e.invalid_token)
        except httpx.HTTPError as e:
            logger.warning(f"Push to {_mask(push_token)} failed: {type(e).__name__}: {e}")
            return SendResult(success=False, error=f"{type(e).__name__}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error sending push to {_mask(push_token)}: {e}", exc_info=True)
            return SendResult(success=False, error=str(e))

    async def send_message(self, push_token: str, message: PushMessage) -> SendResult:
        return await self.send(push_token, message.title, message.body, message.data)

    async def close(self) -> None:
        """Release any held resources."""

    async def _send_impl(
        self, push_token: str, title: str, body: str, data: Dict[str, Any]
    ) -> SendResult:
        """Implementation of the delivery logic."""
        raise NotImplementedError("Subclasses must implement this method")


class ExpoPushService(PushService):
    """Push delivery through the Expo push API."""

    def __init__(self, config: PushConfig, client: Optional[httpx.AsyncClient] = None):
        super().__init__(config)
        self._client = client
        self._owns_client = client is None

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.config.access_token:
            headers["Authorization"] = f"Bearer {self.config.access_token}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _send_impl(
        self, push_token: str, title: str, body: str, data: Dict[str, Any]
    ) -> SendResult:
        """Send one message via Expo."""
        payload: Dict[str, Any] = {
            "to": push_token,
            "title": title,
            "body": body,
            "data": data,
        }
        if self.config.sound:
            payload["sound"] = self.config.sound

        client = await self._get_client()
        response = await client.post(
            self.config.url,
            json=payload,
            headers=self._headers(),
            timeout=self.config.timeout,
        )
        response.raise_for_status()

        try:
            reply = ExpoPushResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise PushDeliveryError(f"Unreadable push provider response: {e}") from e

        if reply.errors:
            raise PushDeliveryError("; ".join(str(err.get("message", err)) for err in reply.errors))

        ticket = reply.ticket
        if ticket is None:
            raise PushDeliveryError("Push provider returned no ticket")
        if not ticket.ok:
            raise PushDeliveryError(
                ticket.message or ticket.error_code or "Push provider reported an error",
                invalid_token=ticket.error_code in INVALID_TOKEN_ERRORS,
            )
        return SendResult(success=True, ticket_id=ticket.id)


def create_push_service(config: PushConfig) -> PushService:
    """Create the push service for the given config."""
    return ExpoPushService(config)
