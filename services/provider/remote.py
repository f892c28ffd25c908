"""
Remote call boundary for the streaming provider.

The resilience layer never talks to the provider directly. It invokes named
backend functions (operation + JSON payload + timeout) and treats every
exception coming out of that boundary as a transient failure.

IMPORTANT:
- Timeouts are the only cancellation mechanism
- invoke_with_deadline() both hands the deadline to the boundary and
  cancels the in-flight call when it expires
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional, Protocol

import httpx

from shared.logging.logger import get_logger

log = get_logger("provider.remote")


class RemoteCallError(Exception):
    """
    Raised by boundary implementations for non-2xx responses, transport
    errors and payloads that are not JSON objects.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code


class RemoteCall(Protocol):
    async def invoke(
        self, operation: str, payload: Dict[str, Any], timeout: float
    ) -> Dict[str, Any]:
        ...


async def invoke_with_deadline(
    remote: RemoteCall,
    operation: str,
    payload: Dict[str, Any],
    timeout: float,
) -> Dict[str, Any]:
    """Run one remote call, cancelling it once `timeout` seconds elapse."""
    return await asyncio.wait_for(
        remote.invoke(operation, payload, timeout),
        timeout=timeout,
    )


class BackendFunctionsClient:
    """
    Remote call boundary backed by a backend-functions gateway.

    Rules:
    - POST {functions_url}/{operation} with a JSON body
    - Bearer API key when configured
    - Any non-2xx, transport error or non-object body -> RemoteCallError
    """

    def __init__(
        self,
        functions_url: str,
        *,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not functions_url:
            raise RuntimeError("Backend functions URL is required")

        self.functions_url = functions_url.rstrip("/")

        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
            headers["apikey"] = api_key

        # Allow caller to supply a shared client; otherwise own lifecycle
        if client is not None:
            client.headers.update(headers)
        self._client = client or httpx.AsyncClient(headers=headers)
        self._client_owned = client is None

    # ------------------------------------------------------------------

    async def invoke(
        self, operation: str, payload: Dict[str, Any], timeout: float
    ) -> Dict[str, Any]:
        url = f"{self.functions_url}/{operation}"

        try:
            resp = await self._client.post(
                url,
                json=payload,
                timeout=timeout,
            )
            resp.raise_for_status()
            data = resp.json()

        except httpx.HTTPStatusError as e:
            raise RemoteCallError(
                f"{operation} failed: "
                f"{e.response.status_code} {e.response.reason_phrase}",
                operation=operation,
                status_code=e.response.status_code,
            ) from e

        except httpx.HTTPError as e:
            raise RemoteCallError(
                f"{operation} transport error: {e}",
                operation=operation,
            ) from e

        except ValueError as e:
            raise RemoteCallError(
                f"{operation} returned invalid JSON: {e}",
                operation=operation,
                status_code=resp.status_code,
            ) from e

        if not isinstance(data, dict):
            raise RemoteCallError(
                f"{operation} returned non-object payload",
                operation=operation,
                status_code=resp.status_code,
            )

        log.debug(f"{operation} -> {resp.status_code}")
        return data

    async def aclose(self) -> None:
        if self._client_owned:
            await self._client.aclose()


__all__ = [
    "RemoteCall",
    "RemoteCallError",
    "BackendFunctionsClient",
    "invoke_with_deadline",
]
