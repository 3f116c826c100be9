"""Thin wrapper over requests that maps failures onto the error taxonomy."""

from __future__ import annotations

from typing import Any

import requests

from microclimate_hub.errors import RequestTimeout, ServiceError, TransportError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="transport")


def _error_body(resp) -> dict:
    """Best-effort JSON error body; empty when the body is not a JSON object."""
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def send_request(session, method: str, url: str, *, timeout: float, **kwargs) -> Any:
    """Perform one HTTP call and return the decoded JSON body (None for empty bodies).

    Raises RequestTimeout when `timeout` elapses, TransportError when no response
    arrives, and ServiceError for non-2xx answers.
    """
    try:
        resp = session.request(method, url, timeout=timeout, **kwargs)
    except requests.Timeout as exc:
        logger.warning(f"{method} {url} timed out after {timeout}s")
        raise RequestTimeout(details=str(exc)) from exc
    except requests.RequestException as exc:
        logger.warning(f"{method} {url} failed", extra={"error": str(exc)})
        raise TransportError(str(exc) or "Network error") from exc

    if not resp.ok:
        body = _error_body(resp)
        message = body.get("message") or body.get("detail") or body.get("error") or f"HTTP {resp.status_code}"
        if not isinstance(message, str):
            message = str(message)
        logger.debug(f"{method} {url} -> {resp.status_code}: {message}")
        raise ServiceError(resp.status_code, message, code=body.get("code"), details=body.get("details"))

    if resp.status_code == 204 or not resp.content:
        return None
    try:
        return resp.json()
    except ValueError as exc:
        raise ServiceError(resp.status_code, "Malformed JSON response") from exc
