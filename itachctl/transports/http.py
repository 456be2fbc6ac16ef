"""HTTP helper for the device's IR learn endpoint."""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Any

from itachctl.core.errors import LearnError

LEARN_PATH = "/api/v1/irlearn"
LOGGER = logging.getLogger(__name__)


class LearnClient:
    def __init__(self, host: str, *, timeout_s: float = 20.0) -> None:
        self.host = host
        self.timeout_s = timeout_s

    @property
    def url(self) -> str:
        return f"http://{self.host}{LEARN_PATH}"

    def fetch(self) -> Any:
        request = urllib.request.Request(
            self.url,
            method="GET",
            headers={"Accept": "application/json"},
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout_s) as response:
                status = response.status
                body = response.read()
        except urllib.error.HTTPError as exc:
            raise LearnError(_stringify(_decode(exc.read()))) from exc
        except (TimeoutError, urllib.error.URLError) as exc:
            raise LearnError(json.dumps(str(getattr(exc, "reason", None) or exc))) from exc

        payload = _decode(body)
        if status != 200:
            raise LearnError(_stringify(payload))
        LOGGER.debug("Learned IR payload from %s", self.url)
        return payload


def _decode(body: bytes) -> Any:
    text = body.decode("utf-8", errors="replace")
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def _stringify(payload: Any) -> str:
    return json.dumps(payload)
