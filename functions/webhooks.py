from __future__ import annotations

import logging
from typing import Optional

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class _NoOpWebhookClient:
    """
    Safe default client:
    - Never hits the network.
    - Always 'succeeds' and logs the event name.
    """
    enabled = False

    def send(self, *, event: str, payload: dict) -> bool:
        logger.info("[Webhook:DISABLED] %s %s", event, payload.get("order_number"))
        return True


class _WebhookClient:
    """
    Minimal JSON webhook client:
    - POSTs {"event": ..., "data": ...} to ORDER_WEBHOOK_URL.
    - Sends ORDER_WEBHOOK_TOKEN as a bearer token when configured.
    """
    def __init__(self) -> None:
        self.url = getattr(settings, "ORDER_WEBHOOK_URL", None)
        self.token = getattr(settings, "ORDER_WEBHOOK_TOKEN", None)
        self.timeout = getattr(settings, "ORDER_WEBHOOK_TIMEOUT", 10)
        self.enabled = bool(self.url)

        if not self.enabled:
            raise RuntimeError("Webhook client misconfigured: missing ORDER_WEBHOOK_URL")

        self.session = requests.Session()
        self.session.headers["Content-Type"] = "application/json"
        if self.token:
            self.session.headers["Authorization"] = f"Bearer {self.token}"

    def send(self, *, event: str, payload: dict) -> bool:
        try:
            r = self.session.post(self.url, json={"event": event, "data": payload}, timeout=self.timeout)
            if r.status_code >= 300:
                logger.warning("Webhook %s failed: %s %s", event, r.status_code, r.text)
                return False
            return True
        except requests.RequestException as exc:
            logger.warning("Webhook %s exception: %s", event, exc)
            return False


# ----- Public API --------------------------------------------------------------

_client_singleton = None


def get_webhook_client():
    """
    Returns a client exposing .send(event=..., payload=...) -> bool.
    - If ORDER_WEBHOOK_ENABLED is off, returns a no-op client.
    - If enabled but the URL is missing, logs a warning and still returns no-op.
    """
    global _client_singleton
    if _client_singleton is not None:
        return _client_singleton

    if not getattr(settings, "ORDER_WEBHOOK_ENABLED", False):
        _client_singleton = _NoOpWebhookClient()
        return _client_singleton

    try:
        _client_singleton = _WebhookClient()
    except RuntimeError as exc:
        logger.warning("Falling back to No-Op webhook client: %s", exc)
        _client_singleton = _NoOpWebhookClient()

    return _client_singleton


def reset_webhook_client() -> None:
    """Forget the cached client (settings changed)."""
    global _client_singleton
    _client_singleton = None


def order_payload(order, extra: Optional[dict] = None) -> dict:
    payload = {
        "order_number": order.order_number,
        "customer_id": order.customer_id,
        "status": order.status,
        "payment_status": order.payment_status,
        "total": str(order.total),
    }
    if extra:
        payload.update(extra)
    return payload


def post_order_event(event: str, order, extra: Optional[dict] = None) -> bool:
    """
    Fire-and-forget notification used by the shop signals. Never raises.
    """
    try:
        return get_webhook_client().send(event=event, payload=order_payload(order, extra))
    except Exception as exc:  # pragma: no cover
        logger.warning("Webhook %s failed (non-fatal): %s", event, exc)
        return False


__all__ = ["get_webhook_client", "post_order_event", "reset_webhook_client"]
