"""
Delivery of merged PDFs to the WhatsApp Business Cloud API.

Sending a document is a two-step exchange: the file is uploaded to the media
endpoint, then a ``document`` message referencing the returned media id is
posted to the configured recipient.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import httpx

from .errors import DeliveryError

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://graph.facebook.com/v22.0"


@dataclass(frozen=True)
class DeliveryDetails:
    page_count: int
    order_value: float
    total: float

    def caption(self, display_id: str) -> str:
        return (
            f"Order {display_id}\n"
            f"Pages: {self.page_count}\n"
            f"Value: {self.order_value:g}\n"
            f"Total: {self.total:g}"
        )


class DeliveryClient(Protocol):
    def send_document(self, file_path: Path, display_id: str, details: DeliveryDetails) -> None:
        ...


class NullDeliveryClient:
    """Stand-in used when no messaging credentials are configured."""

    def send_document(self, file_path: Path, display_id: str, details: DeliveryDetails) -> None:
        logger.info(f"Delivery disabled; {file_path.name} for order {display_id} kept locally")


def _api_error_message(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            payload = exc.response.json()
        except ValueError:
            return f"HTTP {exc.response.status_code}"
        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return f"HTTP {exc.response.status_code}"
    return str(exc) or type(exc).__name__


class WhatsAppClient:
    """
    WhatsApp Business Cloud API client.

    Args:
        access_token: Bearer token for the Graph API
        phone_number_id: Sender phone number id
        recipient_number: Destination number in international format
        api_base_url: Graph API base including version
        timeout: Per-request timeout in seconds
        client: Optional pre-built ``httpx.Client`` (left open for the caller)
    """

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        recipient_number: str,
        api_base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = 60.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.recipient_number = recipient_number
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    def _post(self, url: str, **kwargs: Any) -> httpx.Response:
        if self._client is not None:
            response = self._client.post(url, headers=self._headers, timeout=self.timeout, **kwargs)
        else:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(url, headers=self._headers, **kwargs)
        response.raise_for_status()
        return response

    def upload_media(self, file_path: Path) -> str:
        logger.info(f"Uploading media to WhatsApp: {file_path}")
        url = f"{self.api_base_url}/{self.phone_number_id}/media"
        try:
            with file_path.open("rb") as handle:
                response = self._post(
                    url,
                    data={"messaging_product": "whatsapp", "type": "application/pdf"},
                    files={"file": (file_path.name, handle, "application/pdf")},
                )
            payload = response.json()
        except httpx.HTTPError as exc:
            message = _api_error_message(exc)
            logger.error(f"Failed to upload media to WhatsApp: {message}")
            raise DeliveryError(f"WhatsApp media upload failed: {message}") from exc
        except (OSError, ValueError) as exc:
            raise DeliveryError(f"WhatsApp media upload failed: {exc}") from exc

        media_id = payload.get("id") if isinstance(payload, dict) else None
        if not media_id:
            raise DeliveryError("WhatsApp media upload failed: response carried no media id")
        logger.info(f"Media uploaded successfully, media ID: {media_id}")
        return str(media_id)

    def send_document(self, file_path: Path, display_id: str, details: DeliveryDetails) -> None:
        logger.info(f"Sending PDF to WhatsApp for order: {display_id}")
        media_id = self.upload_media(file_path)
        message = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": self.recipient_number,
            "type": "document",
            "document": {
                "id": media_id,
                "caption": details.caption(display_id),
                "filename": f"{display_id}.pdf",
            },
        }
        try:
            self._post(f"{self.api_base_url}/{self.phone_number_id}/messages", json=message)
        except httpx.HTTPError as exc:
            message_text = _api_error_message(exc)
            logger.error(f"Failed to send PDF to WhatsApp for order {display_id}: {message_text}")
            raise DeliveryError(f"WhatsApp send failed: {message_text}") from exc
        logger.info(f"PDF sent successfully to WhatsApp for order {display_id}")
