"""
SMS gateway client.

Posts messages as JSON to an HTTP SMS gateway (``SMS_GATEWAY_URL``)
using urllib3. The gateway is expected to answer 200-299 on success.

Usage inside a Flask request or app context::

    client = SmsGatewayClient()
    client.send("+264811234567", "Your booking was accepted.")
"""

import json
import logging

import urllib3
from flask import current_app

logger = logging.getLogger(__name__)


class SmsDeliveryError(RuntimeError):
    """Raised when the gateway cannot be reached or rejects a message."""


class SmsGatewayClient:
    """
    Thin client for the SMS gateway.

    Reads the gateway URL, API key, sender ID and timeout from the Flask
    app config on construction.
    """

    def __init__(self) -> None:
        self.url: str = current_app.config.get("SMS_GATEWAY_URL", "")
        self.api_key: str = current_app.config.get("SMS_GATEWAY_API_KEY", "")
        self.sender_id: str = current_app.config.get("SMS_SENDER_ID", "LONGA")
        self.timeout = urllib3.Timeout(
            total=current_app.config.get("SMS_TIMEOUT_SECONDS", 10)
        )
        self.headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def send(self, phone: str, text: str) -> None:
        """
        Send a text message.

        Raises:
            SmsDeliveryError: If the gateway is unconfigured, unreachable
                              or answers with a non-2xx status.
        """
        if not self.url:
            raise SmsDeliveryError("SMS_GATEWAY_URL is not configured.")
        if not phone:
            raise SmsDeliveryError("Recipient has no phone number.")

        body = json.dumps({"to": phone, "from": self.sender_id, "message": text})
        try:
            with urllib3.PoolManager(timeout=self.timeout) as http:
                response = http.request(
                    "POST", self.url, body=body.encode("utf-8"), headers=self.headers
                )
        except urllib3.exceptions.HTTPError as exc:
            raise SmsDeliveryError(f"SMS gateway request failed: {exc}") from exc

        if not 200 <= response.status < 300:
            raise SmsDeliveryError(
                f"SMS gateway returned status {response.status}: "
                f"{response.data[:200].decode('utf-8', 'replace')}"
            )
        logger.info("Sent SMS to %s", phone)
