"""Expo push API client."""

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from proximity_notifier.core.logging import logger

EXPO_TOKEN_PATTERN = re.compile(r"^(ExponentPushToken|ExpoPushToken)\[.+\]$")
# Ticket errors meaning the token itself is no longer usable.
INVALID_DESTINATION_ERRORS = frozenset({"DeviceNotRegistered"})


class PushGatewayError(Exception):
    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason or message


class TransientPushError(PushGatewayError):
    """Timeouts, rate limiting and 5xx responses; safe to retry."""


class InvalidPushDestinationError(PushGatewayError):
    """The push token is malformed, expired or unregistered."""


class PushRejectedError(PushGatewayError):
    """The gateway refused the message for a reason retrying will not fix."""


@dataclass(frozen=True)
class PushReceipt:
    ticket_id: Optional[str] = None


class PushGateway(Protocol):
    async def send(
        self,
        destination: str,
        title: str,
        body: str,
        deep_link: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> PushReceipt:
        ...


class ExpoPushGateway:
    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str = "https://exp.host/--/api/v2/push/send",
        access_token: Optional[str] = None,
        channel_id: str = "events",
    ):
        self._client = client
        self._url = url
        self._access_token = access_token
        self._channel_id = channel_id

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    async def send(
        self,
        destination: str,
        title: str,
        body: str,
        deep_link: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> PushReceipt:
        if not EXPO_TOKEN_PATTERN.match(destination or ""):
            raise InvalidPushDestinationError("Malformed Expo push token", reason="InvalidPushToken")

        message = {
            "to": destination,
            "title": title,
            "body": body,
            "data": {**(data or {}), "deepLink": deep_link},
            "sound": "default",
            "priority": "high",
            "channelId": self._channel_id,
        }
        try:
            response = await self._client.post(self._url, json=[message], headers=self._headers())
        except httpx.TransportError as e:
            raise TransientPushError(f"Push gateway unreachable: {e!r}", reason=type(e).__name__) from e

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientPushError(
                f"Push gateway returned {response.status_code}", reason=f"HTTP{response.status_code}"
            )
        if response.status_code >= 400:
            raise PushRejectedError(
                f"Push gateway rejected request: {response.text[:200]}", reason=f"HTTP{response.status_code}"
            )

        return self._parse_ticket(response.json())

    def _parse_ticket(self, payload: Dict[str, Any]) -> PushReceipt:
        tickets = payload.get("data")
        ticket = tickets[0] if isinstance(tickets, list) and tickets else tickets
        if not isinstance(ticket, dict):
            raise PushRejectedError("Push gateway returned no ticket", reason="MissingTicket")

        if ticket.get("status") == "ok":
            return PushReceipt(ticket_id=ticket.get("id"))

        error = (ticket.get("details") or {}).get("error") or "UnknownError"
        message = ticket.get("message") or error
        if error in INVALID_DESTINATION_ERRORS:
            raise InvalidPushDestinationError(message, reason=error)
        if error == "MessageRateExceeded":
            raise TransientPushError(message, reason=error)
        logger.warning("Push ticket returned error", error=error, message=message)
        raise PushRejectedError(message, reason=error)
