"""
Evolution API client.

One Evolution instance per tool. Messages go out through the instance REST
endpoints; inbound traffic arrives as webhooks parsed in `webhook.py`.

Reference: https://doc.evolution-api.com/
"""

import logging
from typing import Any

import httpx

from seven_whatsapp.providers.base import (
    DeliveryStatus,
    InboundMessage,
    ProviderError,
    ProviderResponse,
    WhatsAppProvider,
    jid_to_number,
)
from seven_whatsapp.providers.evolution.webhook import parse_evolution_webhook

logger = logging.getLogger(__name__)

SEND_TEXT_PATH = "/message/sendText/{instance}"
SEND_PRESENCE_PATH = "/chat/sendPresence/{instance}"
MARK_READ_PATH = "/chat/markMessageAsRead/{instance}"
CONNECTION_STATE_PATH = "/instance/connectionState/{instance}"


def _error_message(body: dict[str, Any]) -> str:
    # Evolution nests validation errors as {"response": {"message": [...]}}
    response = body.get("response")
    if isinstance(response, dict) and response.get("message"):
        message = response["message"]
        return "; ".join(str(m) for m in message) if isinstance(message, list) else str(message)
    return str(body.get("error") or body.get("message") or "Unknown error")


class EvolutionWhatsAppProvider(WhatsAppProvider):
    """WhatsApp provider backed by a self-hosted Evolution API instance."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        instance_name: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            api_url: Evolution base URL, trailing slash allowed
            api_key: instance or global api key, sent as the `apikey` header
            instance_name: Evolution instance bound to the tool
            timeout: per-request timeout in seconds
            transport: httpx transport override (tests pass httpx.MockTransport)
        """
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.instance_name = instance_name
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.api_url,
                timeout=self.timeout,
                headers={"apikey": self.api_key},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def _path(self, template: str) -> str:
        return template.format(instance=self.instance_name)

    async def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Call the Evolution API and return the decoded JSON body.

        Raises:
            ProviderError: network failure (retryable) or HTTP status >= 400
                (retryable for 5xx)
        """
        try:
            response = await self.client.request(method, path, json=payload)
        except httpx.RequestError as e:
            raise ProviderError(
                message=f"Evolution API unreachable: {e}",
                code="HTTP_ERROR",
                details={"instance": self.instance_name, "path": path},
                retryable=True,
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text}
        if not isinstance(body, dict):
            body = {"data": body}

        if response.is_error:
            raise ProviderError(
                message=_error_message(body),
                code=str(response.status_code),
                details=body,
                retryable=response.status_code >= 500,
            )
        return body

    async def send_text(self, to: str, text: str, reply_to: str | None = None) -> ProviderResponse:
        payload: dict[str, Any] = {"number": jid_to_number(to), "text": text}
        if reply_to:
            payload["quoted"] = {"key": {"id": reply_to}}

        try:
            body = await self._request("POST", self._path(SEND_TEXT_PATH), payload)
        except ProviderError as e:
            logger.error(
                f"Evolution sendText failed: {e}",
                extra={"instance": self.instance_name, "code": e.code},
            )
            return ProviderResponse(
                success=False,
                error_code=e.code,
                error_message=e.message,
                raw_response=e.details,
            )

        message_id = (body.get("key") or {}).get("id") or body.get("id")
        logger.info(
            "Message sent",
            extra={"instance": self.instance_name, "to": jid_to_number(to), "message_id": message_id},
        )
        return ProviderResponse(success=True, message_id=message_id, raw_response=body)

    async def send_presence(self, to: str, presence: str = "composing", delay_ms: int = 0) -> bool:
        """Evolution holds the presence for `delay_ms` before answering."""
        payload = {"number": jid_to_number(to), "presence": presence, "delay": max(0, int(delay_ms))}
        try:
            await self._request("POST", self._path(SEND_PRESENCE_PATH), payload)
        except ProviderError as e:
            logger.warning(f"Evolution sendPresence failed: {e}", extra={"instance": self.instance_name})
            return False
        return True

    async def mark_as_read(self, remote_jid: str, message_id: str) -> bool:
        payload = {"readMessages": [{"remoteJid": remote_jid, "fromMe": False, "id": message_id}]}
        try:
            await self._request("POST", self._path(MARK_READ_PATH), payload)
        except ProviderError as e:
            logger.warning(f"Evolution markMessageAsRead failed: {e}", extra={"instance": self.instance_name})
            return False
        return True

    async def get_connection_state(self) -> str:
        """Instance state: "open", "connecting" or "close"."""
        body = await self._request("GET", self._path(CONNECTION_STATE_PATH))
        return (body.get("instance") or body).get("state", "close")

    def parse_webhook(self, payload: dict[str, Any]) -> tuple[list[InboundMessage], list[DeliveryStatus]]:
        return parse_evolution_webhook(payload)
