from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import requests

GRAPH_BASE = "https://graph.facebook.com"
DEFAULT_API_VERSION = "v22.0"
REQUEST_TIMEOUT = 30
DUTIES_TEMPLATE = "trafikkvakt_dagens_vakter"
DUTIES_TEMPLATE_LANGUAGE = "nb"
FALLBACK_TEMPLATE = "hello_world"
FALLBACK_TEMPLATE_LANGUAGE = "en_US"
TEMPLATE_NOT_FOUND_CODE = 131026

logger = logging.getLogger(__name__)


class WhatsAppConfigError(RuntimeError):
    """Raised when WhatsApp credentials are missing."""


class WhatsAppAPIError(RuntimeError):
    """Raised when a Graph API call for WhatsApp fails."""

    def __init__(self, message: str, code: Any = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


def format_phone_number(number: Optional[str]) -> Optional[str]:
    if not number:
        return None
    return number.strip().lstrip("+")


class WhatsAppBusinessClient:
    """Minimal WhatsApp Business Cloud API client for template and text messages."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        phone_number_id: Optional[str] = None,
        recipient_number: Optional[str] = None,
        business_account_id: Optional[str] = None,
        api_version: str = DEFAULT_API_VERSION,
    ):
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.recipient_number = recipient_number
        self.business_account_id = business_account_id
        self.base_url = f"{GRAPH_BASE}/{api_version}"
        self.is_ready = False
        self.status = "disconnected"
        self.phone_info: dict[str, Any] = {}

    # ---------- Private helpers ----------
    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": "TrafikkvaktBot/1.0",
        }

    def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        url = f"{self.base_url}/{path}"
        try:
            response = requests.request(
                method,
                url,
                headers=self._headers(),
                timeout=REQUEST_TIMEOUT,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise WhatsAppAPIError(f"{method} {path} failed: {exc}") from exc
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400:
            error = body.get("error", {}) if isinstance(body, dict) else {}
            message = error.get("message") or response.text or f"HTTP {response.status_code}"
            raise WhatsAppAPIError(message, code=error.get("code"), status_code=response.status_code)
        return body if isinstance(body, dict) else {}

    def _require_credentials(self) -> None:
        if not self.access_token:
            raise WhatsAppConfigError(
                "WhatsApp Access Token not configured. Please set WHATSAPP_ACCESS_TOKEN environment variable."
            )
        if not self.phone_number_id:
            raise WhatsAppConfigError(
                "WhatsApp Phone Number ID not configured. Please set WHATSAPP_PHONE_NUMBER_ID environment variable."
            )

    def _ensure_ready(self) -> None:
        if not self.is_ready:
            self.initialize()

    def _target(self, recipient: Optional[str]) -> str:
        target = format_phone_number(recipient or self.recipient_number)
        if not target:
            raise WhatsAppConfigError(
                "WhatsApp Recipient Number not configured. Please set WHATSAPP_RECIPIENT_NUMBER environment variable."
            )
        return target

    def _post_message(self, payload: dict[str, Any], template: Optional[str] = None) -> dict[str, Any]:
        body = self._request("POST", f"{self.phone_number_id}/messages", json=payload)
        messages = body.get("messages") or [{}]
        result = {
            "success": True,
            "messageId": messages[0].get("id"),
            "recipient": payload["to"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if template:
            result["template"] = template
        return result

    # ---------- Public API ----------
    def initialize(self) -> dict[str, Any]:
        self._require_credentials()
        self._target(None)
        try:
            info = self._request("GET", self.phone_number_id)
        except WhatsAppAPIError as exc:
            self.status = "error"
            self.is_ready = False
            logger.error("Error connecting to WhatsApp Business API: %s", exc)
            raise WhatsAppAPIError(
                f"WhatsApp Business API connection failed: {exc}", code=exc.code, status_code=exc.status_code
            ) from exc
        self.phone_info = {
            "id": info.get("id"),
            "display_phone_number": info.get("display_phone_number"),
            "verified_name": info.get("verified_name"),
        }
        self.is_ready = True
        self.status = "ready"
        logger.info("WhatsApp Business API connected (%s)", self.phone_info.get("display_phone_number"))
        return self.phone_info

    def send_template_message(
        self,
        template_name: str,
        language_code: str = FALLBACK_TEMPLATE_LANGUAGE,
        components: Optional[list[dict[str, Any]]] = None,
        recipient: Optional[str] = None,
    ) -> dict[str, Any]:
        if not template_name:
            raise ValueError("Template name is required")
        self._ensure_ready()
        template: dict[str, Any] = {"name": template_name, "language": {"code": language_code or FALLBACK_TEMPLATE_LANGUAGE}}
        if components:
            template["components"] = components
        payload = {
            "messaging_product": "whatsapp",
            "to": self._target(recipient),
            "type": "template",
            "template": template,
        }
        result = self._post_message(payload, template=template_name)
        logger.info("Template %s sent (%s)", template_name, result["messageId"])
        return result

    def send_hello_world_template(self, recipient: Optional[str] = None) -> dict[str, Any]:
        return self.send_template_message(FALLBACK_TEMPLATE, FALLBACK_TEMPLATE_LANGUAGE, recipient=recipient)

    def send_duties_template(
        self,
        duties_text: str,
        date_text: str,
        recipient: Optional[str] = None,
    ) -> dict[str, Any]:
        components = [
            {
                "type": "body",
                "parameters": [
                    {"type": "text", "text": date_text},
                    {"type": "text", "text": duties_text},
                ],
            }
        ]
        try:
            return self.send_template_message(
                DUTIES_TEMPLATE,
                DUTIES_TEMPLATE_LANGUAGE,
                components=components,
                recipient=recipient,
            )
        except WhatsAppAPIError as exc:
            if exc.code != TEMPLATE_NOT_FOUND_CODE:
                raise
            logger.warning("Template %s not approved yet, falling back to %s", DUTIES_TEMPLATE, FALLBACK_TEMPLATE)
        return self.send_hello_world_template(recipient)

    def send_message(self, message: str, recipient: Optional[str] = None) -> dict[str, Any]:
        if not message:
            raise ValueError("Message is required")
        self._ensure_ready()
        payload = {
            "messaging_product": "whatsapp",
            "to": self._target(recipient),
            "type": "text",
            "text": {"body": message},
        }
        return self._post_message(payload)

    def get_message_templates(self) -> list[dict[str, Any]]:
        self._require_credentials()
        if not self.business_account_id:
            raise WhatsAppConfigError(
                "WhatsApp Business Account ID not configured. Please set WHATSAPP_BUSINESS_ACCOUNT_ID environment variable."
            )
        body = self._request(
            "GET",
            f"{self.business_account_id}/message_templates",
            params={"fields": "name,status,language,category"},
        )
        return body.get("data", [])

    def get_business_profile(self) -> dict[str, Any]:
        self._require_credentials()
        body = self._request(
            "GET",
            f"{self.phone_number_id}/whatsapp_business_profile",
            params={"fields": "about,address,description,email,websites,vertical"},
        )
        data = body.get("data") or [{}]
        return data[0]

    def get_status(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "isReady": self.is_ready,
            "service": "whatsapp-business-api",
            "phoneNumberId": self.phone_number_id,
            "recipientNumber": self.recipient_number,
            "hasCredentials": bool(self.access_token and self.phone_number_id and self.recipient_number),
        }
