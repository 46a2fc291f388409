from __future__ import annotations

import logging
from typing import Any

import httpx

from app.application.exceptions import GatewayUnavailable, ValidationFailed


def flatten_form(fields: dict[str, Any], prefix: str = "") -> dict[str, str]:
    """Encode nested fields the way Stripe's form API expects: metadata[key]=value."""
    flat: dict[str, str] = {}
    for key, value in fields.items():
        name = f"{prefix}[{key}]" if prefix else key
        if isinstance(value, dict):
            flat.update(flatten_form(value, name))
        elif isinstance(value, bool):
            flat[name] = "true" if value else "false"
        elif value is None:
            flat[name] = ""
        else:
            flat[name] = str(value)
    return flat


class StripeClient:
    def __init__(self, secret_key: str, api_base: str = "https://api.stripe.com/v1", timeout: float = 10.0) -> None:
        self._api_base = api_base.rstrip("/")
        self._client = httpx.Client(timeout=timeout, auth=(secret_key, ""))
        self._logger = logging.getLogger(__name__)

    def get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any] | None:
        """GET a resource. Returns None on 404."""
        resp = self._request("GET", path, params=params)
        if resp.status_code == 404:
            return None
        return self._decode(resp, path)

    def post(self, path: str, fields: dict[str, Any]) -> dict[str, Any]:
        resp = self._request("POST", path, data=flatten_form(fields))
        if resp.status_code == 404:
            raise ValidationFailed(f"Unknown gateway resource: {path}")
        return self._decode(resp, path)

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self._api_base}/{path.lstrip('/')}"
        try:
            return self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            self._logger.error("Stripe request timed out", extra={"path": path, "error": str(e)})
            raise GatewayUnavailable("Payment gateway timed out") from e
        except httpx.TransportError as e:
            self._logger.error("Stripe request failed", extra={"path": path, "error": str(e)})
            raise GatewayUnavailable("Payment gateway unreachable") from e

    def _decode(self, resp: httpx.Response, path: str) -> dict[str, Any]:
        if resp.status_code < 400:
            return resp.json()

        try:
            error = resp.json().get("error", {})
            error_type = error.get("type")
            error_message = error.get("message")
        except ValueError:
            error_type = None
            error_message = resp.text

        self._logger.error(
            "Stripe request rejected",
            extra={
                "status": resp.status_code,
                "error_type": error_type,
                "error_message": error_message,
                "path": path,
            },
        )
        if resp.status_code == 400:
            raise ValidationFailed(error_message or "Payment gateway rejected the request")
        # Auth failures, rate limits and 5xx are not the caller's fault
        raise GatewayUnavailable(f"Payment gateway error ({resp.status_code})")
