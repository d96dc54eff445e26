from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


logger = logging.getLogger(__name__)

MM_TO_INCHES = 0.0393701


class ProviderError(RuntimeError):
    """Base provider error."""


class QuotaExceeded(ProviderError):
    """Raised when a provider reports a quota/usage limit issue."""


@dataclass
class RequestConfig:
    timeout: float = 10.0
    retries: int = 2
    backoff_factor: float = 0.3
    status_forcelist: Iterable[int] = (500, 502, 503, 504)
    headers: Dict[str, str] = field(default_factory=dict)


class HttpProvider:
    """Base class that adds retry/timeouts for HTTP providers."""

    name = "http"

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        request_config: Optional[RequestConfig] = None,
    ) -> None:
        self.request_config = request_config or RequestConfig()
        self.session = session or self._build_session(self.request_config)
        if self.request_config.headers:
            self.session.headers.update(self.request_config.headers)
        self._log = logging.getLogger(self.__class__.__name__)

    def _build_session(self, config: RequestConfig) -> requests.Session:
        session = requests.Session()
        retry = Retry(
            total=config.retries,
            backoff_factor=config.backoff_factor,
            status_forcelist=tuple(config.status_forcelist),
            allowed_methods=frozenset({"GET"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    def _handle_response(self, response: Response) -> Response:
        if response.status_code == 429:
            self._log.warning("Quota exceeded: %s", response.text[:200])
            raise QuotaExceeded("quota exceeded")
        if response.status_code >= 400:
            self._log.error("Provider returned %s: %s", response.status_code, response.text[:200])
            raise ProviderError(f"HTTP {response.status_code}")
        return response

    def _request(self, method: str, url: str, **kwargs) -> Response:
        try:
            response = self.session.request(
                method,
                url,
                timeout=self.request_config.timeout,
                **kwargs,
            )
        except requests.Timeout as exc:
            self._log.error("Request to %s timed out", url)
            raise ProviderError("timeout") from exc
        except requests.RequestException as exc:
            self._log.error("Request to %s failed: %s", url, exc)
            raise ProviderError("request failed") from exc
        return self._handle_response(response)

    def _get_json(self, url: str, **kwargs) -> Any:
        response = self._request("GET", url, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            self._log.error("Failed to decode JSON from %s", url)
            raise ProviderError("invalid json") from exc


def mm_to_inches(value: float) -> float:
    return value * MM_TO_INCHES


__all__ = ["HttpProvider", "MM_TO_INCHES", "ProviderError", "QuotaExceeded", "RequestConfig", "mm_to_inches"]
