from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import requests

from src.xiangqibridge.infrastructure.config import DEFAULT_RECOGNITION_URL

UPSTREAM_HEADERS = {
    "accept": "application/json, text/plain, */*",
    "origin": "https://xiangqiai.com",
    "referer": "https://xiangqiai.com/",
}


class RecognitionError(RuntimeError):
    """Raised when the recognition upstream cannot be reached."""

    code: str = "recognition_unavailable"


@dataclass(frozen=True, slots=True)
class RecognitionResult:
    """Upstream answer, relayed as-is."""

    status_code: int
    reason: str
    payload: Any | None
    text: str
    # False when the body could not be decoded; a decoded JSON null leaves payload None.
    is_json: bool = True

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class RecognitionClient:
    """Forward board images to the external recognition API."""

    def __init__(
        self,
        endpoint: str = DEFAULT_RECOGNITION_URL,
        *,
        timeout: float = 30.0,
        http: requests.Session | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._timeout = timeout
        self._http = http or requests.Session()

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def recognize(
        self,
        image: bytes,
        *,
        filename: str = "board.jpg",
        content_type: str = "image/jpeg",
    ) -> RecognitionResult:
        try:
            response = self._http.post(
                self._endpoint,
                headers=UPSTREAM_HEADERS,
                files={"image": (filename, image, content_type)},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise RecognitionError(f"Recognition upstream unreachable: {exc}") from exc

        payload: Any | None = None
        is_json = True
        try:
            payload = response.json()
        except ValueError:
            is_json = False

        return RecognitionResult(
            status_code=response.status_code,
            reason=response.reason or "",
            payload=payload,
            text=response.text,
            is_json=is_json,
        )


__all__ = ["RecognitionClient", "RecognitionError", "RecognitionResult", "UPSTREAM_HEADERS"]
