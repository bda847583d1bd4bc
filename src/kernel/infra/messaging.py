"""
Outbound SMS gateway adapters.

The client layer is the only place that understands provider responses: it
turns them into the closed ``ErrorKind`` set so callers never match on
message text.
"""

import re
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from src.kernel.errors import ErrorKind, InfraError, TransientInfraError, infra_error_for
from src.logging_config import get_logger

logger = get_logger("src.kernel.infra.sms")

# Provider error codes -> kinds; anything unlisted falls back to HTTP status
PROVIDER_ERROR_CODES = {
    "OptedOut": ErrorKind.OPTED_OUT,
    "InvalidParameter": ErrorKind.INVALID_DESTINATION,
    "InvalidPhoneNumber": ErrorKind.INVALID_DESTINATION,
    "Throttling": ErrorKind.QUOTA_EXCEEDED,
    "QuotaExceeded": ErrorKind.QUOTA_EXCEEDED,
    "AuthorizationError": ErrorKind.AUTHORIZATION,
}


@dataclass(frozen=True)
class DeliveryReceipt:
    """Gateway acknowledgement of an accepted message."""

    delivery_id: Optional[str] = None


class MessagingGateway(Protocol):
    """Outbound SMS delivery."""

    async def send(self, destination: str, text: str) -> DeliveryReceipt:
        ...


def mask_code_in_message(message: str) -> str:
    """Hide all but the last two digits of any number in a message."""
    def _mask(match: "re.Match[str]") -> str:
        digits = match.group(0)
        return "*" * (len(digits) - 2) + digits[-2:]

    return re.sub(r"\d{3,}", _mask, message or "")


def mask_destination(phone: str, visible_digits: int = 3) -> str:
    if not phone or len(phone) <= visible_digits:
        return phone
    return "*" * (len(phone) - visible_digits) + phone[-visible_digits:]


class LogSmsGateway:
    """Development backend: logs the message instead of sending it."""

    async def send(self, destination: str, text: str) -> DeliveryReceipt:
        delivery_id = f"log-{uuid.uuid4()}"
        logger.info(
            "SMS (log backend) to=%s msg=%s",
            mask_destination(destination),
            mask_code_in_message(text),
            extra={"delivery_id": delivery_id},
        )
        return DeliveryReceipt(delivery_id=delivery_id)


def _error_from_response(response: httpx.Response) -> InfraError:
    body: Dict[str, Any] = {}
    try:
        parsed = response.json()
        if isinstance(parsed, dict):
            body = parsed
    except ValueError:
        pass
    provider_code = str(body.get("code") or body.get("Code") or "")
    detail = f"HTTP {response.status_code} {provider_code} {body.get('message', '')}".strip()

    kind = PROVIDER_ERROR_CODES.get(provider_code)
    if kind is None:
        if response.status_code in (401, 403):
            kind = ErrorKind.AUTHORIZATION
        elif response.status_code == 429:
            kind = ErrorKind.THROTTLED
        elif response.status_code in (400, 422):
            kind = ErrorKind.INVALID_DESTINATION
        elif response.status_code == 404:
            kind = ErrorKind.NOT_FOUND
        elif response.status_code >= 500:
            kind = ErrorKind.UNAVAILABLE
        else:
            kind = ErrorKind.UNKNOWN

    if kind in (ErrorKind.AUTHORIZATION, ErrorKind.NOT_FOUND):
        # Never surface gateway credential problems to the user
        return infra_error_for(kind, detail, message="SMS service configuration error. Please contact support.")
    return infra_error_for(kind, detail)


class HttpSmsGateway:
    """
    JSON-over-HTTP SMS provider.

    POSTs ``{"to", "message", "sender"?}`` with an optional bearer token and
    expects ``{"messageId": ...}`` (or ``{"id": ...}``) on success.
    """

    def __init__(
        self,
        url: str,
        auth_token: Optional[str] = None,
        sender_name: Optional[str] = None,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not (url or "").strip():
            raise ValueError("SMS URL must be configured for HTTP provider")
        self.url = url
        self.auth_token = auth_token
        self.sender_name = sender_name
        self.timeout = timeout
        self._client = client

    async def _post(self, payload: Dict[str, Any], headers: Dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(self.url, json=payload, headers=headers)

    async def send(self, destination: str, text: str) -> DeliveryReceipt:
        payload: Dict[str, Any] = {"to": destination, "message": text}
        if self.sender_name:
            payload["sender"] = self.sender_name
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"

        try:
            response = await self._post(payload, headers)
        except httpx.TimeoutException as exc:
            raise TransientInfraError(ErrorKind.TIMEOUT, f"SMS gateway timeout: {exc}") from exc
        except httpx.TransportError as exc:
            raise TransientInfraError(ErrorKind.NETWORK, f"SMS gateway unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise _error_from_response(response)

        delivery_id = None
        try:
            data = response.json()
            if isinstance(data, dict):
                delivery_id = data.get("messageId") or data.get("id")
        except ValueError:
            pass

        logger.info(
            "SMS sent to=%s",
            mask_destination(destination),
            extra={"delivery_id": delivery_id},
        )
        return DeliveryReceipt(delivery_id=str(delivery_id) if delivery_id else None)


def build_gateway(
    provider: str,
    *,
    url: str = "",
    auth_token: str = "",
    sender_name: str = "",
    timeout: float = 5.0,
) -> MessagingGateway:
    """Resolve the configured SMS backend."""
    provider = (provider or "log").lower()
    if provider == "http":
        return HttpSmsGateway(
            url=url,
            auth_token=auth_token or None,
            sender_name=sender_name or None,
            timeout=timeout,
        )
    if provider != "log":
        logger.warning("Unknown SMS provider %r, falling back to log backend", provider)
    return LogSmsGateway()
