"""
Client for the external text-generation (enrichment) service.

Talks to an Ollama-compatible HTTP API:

- ``POST /api/generate`` with ``{"model", "prompt", "stream": false}``,
  answered by ``{"response": "..."}``
- ``GET /api/tags`` listing the locally available models

Failures are mapped onto the transport taxonomy: ``Unreachable`` for
connection problems and timeouts, ``BadStatus`` for non-2xx answers,
``Malformed`` for bodies that do not decode into the expected shape, and
``Cancelled`` when the caller's token fires mid-call. The client never
retries; that policy belongs to the caller.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Protocol, Type, TypeVar, Union, runtime_checkable

import httpx
from pydantic import BaseModel, ValidationError

from recordflow.clock import CancelToken
from recordflow.config import get_settings
from recordflow.domain.errors import BadStatus, Cancelled, Malformed, TransportError, Unreachable
from recordflow.domain.models import GenerateRequest, GenerateResponse, LocalModel, TagsResponse
from recordflow.utils.logging import get_logger

log = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

ModelName = Union[LocalModel, str]


@runtime_checkable
class EnrichmentClient(Protocol):
    """Anything that can turn a prompt into generated text."""

    async def generate(
        self,
        model: ModelName,
        prompt: str,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[CancelToken] = None,
    ) -> str:
        """
        Generate text for `prompt` with `model`.

        Raises
        ------
        Unreachable, BadStatus, Malformed, Cancelled
        """
        ...


def _model_name(model: ModelName) -> str:
    return model.value if isinstance(model, LocalModel) else str(model)


class OllamaClient:
    """
    Enrichment client for an Ollama server.

    Parameters
    ----------
    base_url : str | None
        Server root. Defaults to settings.enrichment_base_url.
    timeout : float | None
        Default per-request timeout in seconds.
    transport : httpx.AsyncBaseTransport | None
        Injected transport (e.g. httpx.MockTransport in tests).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.enrichment_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.enrichment_timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> "OllamaClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def generate(
        self,
        model: ModelName,
        prompt: str,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[CancelToken] = None,
    ) -> str:
        body = GenerateRequest(model=_model_name(model), prompt=prompt, stream=False)
        request = self._client.build_request(
            "POST",
            "/api/generate",
            json=body.model_dump(),
            timeout=timeout if timeout is not None else self.timeout,
        )
        payload = await self._send(request, GenerateResponse, cancel)
        return payload.response

    async def list_models(self, *, timeout: Optional[float] = None) -> List[str]:
        request = self._client.build_request(
            "GET", "/api/tags", timeout=timeout if timeout is not None else self.timeout
        )
        payload = await self._send(request, TagsResponse, None)
        return [tag.name for tag in payload.models]

    async def is_available(self, *, timeout: float = 3.0) -> bool:
        try:
            await self.list_models(timeout=timeout)
        except TransportError:
            return False
        return True

    async def _send(
        self,
        request: httpx.Request,
        schema: Type[M],
        cancel: Optional[CancelToken],
    ) -> M:
        if cancel is None:
            response = await self._perform(request)
        else:
            response = await self._perform_cancellable(request, cancel)
        return self._decode(response, schema)

    async def _perform(self, request: httpx.Request) -> httpx.Response:
        try:
            return await self._client.send(request)
        except httpx.TimeoutException as exc:
            raise Unreachable(f"timed out calling {request.url}") from exc
        except httpx.DecodingError as exc:
            raise Malformed(f"undecodable response body from {request.url}: {exc}") from exc
        except httpx.RequestError as exc:
            raise Unreachable(f"cannot reach {request.url}: {exc}") from exc

    async def _perform_cancellable(
        self, request: httpx.Request, cancel: CancelToken
    ) -> httpx.Response:
        cancel.raise_if_cancelled()
        call = asyncio.ensure_future(self._perform(request))
        stopper = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({call, stopper}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            call.cancel()
            raise
        finally:
            stopper.cancel()
        if call.done():
            return call.result()
        call.cancel()
        await asyncio.gather(call, return_exceptions=True)
        raise Cancelled(f"request to {request.url} cancelled")

    @staticmethod
    def _decode(response: httpx.Response, schema: Type[M]) -> M:
        if not response.is_success:
            log.warning(
                "[ENRICHMENT] non-2xx response",
                extra={"status_code": response.status_code, "url": str(response.request.url)},
            )
            raise BadStatus(response.status_code, response.reason_phrase or None)
        try:
            return schema.model_validate_json(response.content)
        except ValidationError as exc:
            raise Malformed(f"unexpected response body: {exc.error_count()} error(s)") from exc


__all__ = ["EnrichmentClient", "ModelName", "OllamaClient"]
