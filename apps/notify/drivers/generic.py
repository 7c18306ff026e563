"""Generic webhook driver: sends the rendered JSON payload to an HTTP endpoint."""

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Optional

from apps.notify.drivers.base import BaseNotifyDriver, DeliveryResult, NotificationMessage

logger = logging.getLogger(__name__)

BODY_METHODS = ("POST", "PUT", "PATCH")


class GenericNotifyDriver(BaseNotifyDriver):
    name = "generic"
    description = "JSON payload to a custom HTTP endpoint"
    optional_config = ("endpoint", "method", "headers", "timeout", "payload_template", "disabled")

    USER_AGENT = "StatusPage/1.0"

    def is_disabled(self, config: dict[str, Any]) -> bool:
        """An empty or ``disabled`` config turns the channel into a no-op."""
        return not config or bool(config.get("disabled"))

    def validate_config(self, config: dict[str, Any]) -> bool:
        if self.is_disabled(config):
            return True
        return str(config.get("endpoint") or "").startswith(("http://", "https://"))

    def build_request(
        self, message: NotificationMessage, config: dict[str, Any]
    ) -> urllib.request.Request:
        payload: Optional[dict[str, Any]] = self.templating.render_payload(
            self.name, message.to_context(), config
        )
        if payload is None:
            payload = message.to_context()

        method = str(config.get("method", "POST")).upper()
        headers = {"Content-Type": "application/json", "User-Agent": self.USER_AGENT}
        headers.update(config.get("headers") or {})
        data = json.dumps(payload, default=str).encode("utf-8")

        return urllib.request.Request(
            config["endpoint"],
            data=data if method in BODY_METHODS else None,
            headers=headers,
            method=method,
        )

    def deliver(self, message: NotificationMessage, config: dict[str, Any]) -> DeliveryResult:
        if not self.validate_config(config):
            return DeliveryResult.failed("Invalid configuration (http(s) endpoint required)")
        if self.is_disabled(config):
            logger.info("Generic notification skipped: channel disabled")
            return DeliveryResult.skip("channel disabled")

        endpoint = config["endpoint"]
        try:
            request = self.build_request(message, config)
        except ValueError as e:
            return self._failure("render webhook payload", e)

        try:
            with urllib.request.urlopen(request, timeout=config.get("timeout", 30)) as response:
                status_code = response.getcode()
                body = response.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            detail = e.read().decode("utf-8", errors="replace") if e.fp else str(e.reason)
            logger.error(f"Webhook {endpoint} returned HTTP {e.code}: {detail}")
            return DeliveryResult.failed(f"HTTP error ({e.code}): {detail}")
        except urllib.error.URLError as e:
            logger.error(f"Webhook {endpoint} unreachable: {e.reason}")
            return DeliveryResult.failed(f"Failed to connect to {endpoint}: {e.reason}")
        except OSError as e:
            return self._failure(f"reach {endpoint}", e)

        logger.info(f"Webhook notification sent to {endpoint}: {status_code}")
        return DeliveryResult(
            success=True,
            metadata={"endpoint": endpoint, "status_code": status_code, "response": body[:500]},
        )
