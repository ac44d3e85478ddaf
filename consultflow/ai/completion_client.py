"""
Completion service client — the single outbound HTTP path to the LLM.

POSTs the chat request and hands back the raw response chunks; frame
decoding is consultflow.ai.stream's job.  No retries: a failure surfaces to
the orchestrator, which records it on the run.

Testability: pass a mock ``session`` to CompletionClient() in tests instead of
letting it create a real requests.Session internally.
"""

from __future__ import annotations

import logging
from typing import Iterator

import requests

logger = logging.getLogger(__name__)

_DEFAULT_CONNECT_TIMEOUT = 10


class CompletionServiceError(Exception):
    """Non-2xx reply (or unusable body) from the completion service."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class CompletionClient:
    """Streaming chat-completion client.

    Usage:
        client = CompletionClient.from_config(app.config)
        for chunk in client.stream_chat(messages, system_prompt="...", model="...", temperature=0.7):
            ...
    """

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        *,
        session: requests.Session | None = None,
        connect_timeout: float = _DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float | None = None,
    ) -> None:
        self.url = url
        self.api_key = api_key
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self._session = session

    @classmethod
    def from_config(cls, config, session: requests.Session | None = None) -> "CompletionClient":
        return cls(
            config.get("COMPLETION_SERVICE_URL", ""),
            config.get("COMPLETION_SERVICE_KEY") or None,
            session=session,
            connect_timeout=config.get("COMPLETION_CONNECT_TIMEOUT") or _DEFAULT_CONNECT_TIMEOUT,
            read_timeout=config.get("COMPLETION_READ_TIMEOUT"),
        )

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @staticmethod
    def _error_message(resp) -> str:
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return f"HTTP {resp.status_code}"

    def stream_chat(
        self,
        messages: list[dict],
        *,
        system_prompt: str,
        model: str,
        temperature: float,
        extra: dict | None = None,
    ) -> Iterator[bytes]:
        """POST the request and yield raw body chunks as they arrive.

        Raises:
            CompletionServiceError: URL not configured, non-2xx status or no body.
            requests.RequestException: transport failure (connect/read/abort).
        """
        if not self.url:
            raise CompletionServiceError("COMPLETION_SERVICE_URL is not configured")

        payload = {
            **(extra or {}),
            "messages": messages,
            "systemPrompt": system_prompt,
            "model": model,
            "temperature": temperature,
        }
        logger.debug("Completion request model=%s messages=%d", model, len(messages))
        resp = self.session.post(
            self.url,
            json=payload,
            headers=self._headers(),
            stream=True,
            timeout=(self.connect_timeout, self.read_timeout),
        )
        try:
            if not 200 <= resp.status_code < 300:
                raise CompletionServiceError(self._error_message(resp), status_code=resp.status_code)

            received = False
            for chunk in resp.iter_content(chunk_size=None):
                if chunk:
                    received = True
                    yield chunk
            if not received:
                raise CompletionServiceError("Completion service returned an empty body",
                                             status_code=resp.status_code)
        finally:
            resp.close()
