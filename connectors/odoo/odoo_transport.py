"""Odoo XML-RPC HTTP transport.

Fire-once POST of a codec-produced body. No retries: retry policy belongs to
the caller, and the invoice synthesizer deliberately does not retry.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp

from connectors.odoo.odoo_errors import TransportError
from core.observability import get_logger

logger = get_logger(__name__)

XML_CONTENT_TYPE = "text/xml"
MAX_ERROR_BODY_CHARS = 500


class XmlRpcTransport(ABC):
    """Seam between the RPC client and the network."""

    @abstractmethod
    async def post(self, url: str, body: str) -> str:
        """POST body to url and return the response text.

        Raises:
            TransportError: Network failure or non-2xx status
        """
        pass


class OdooTransport(XmlRpcTransport):
    """aiohttp-backed transport.

    A session can be injected for connection reuse; otherwise each post opens
    and closes its own session.
    """

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self._session = session

    async def post(self, url: str, body: str) -> str:
        payload = body.encode("utf-8")
        headers = {
            "Content-Type": XML_CONTENT_TYPE,
            "Content-Length": str(len(payload)),
        }

        try:
            if self._session is not None:
                return await self._send(self._session, url, payload, headers)
            async with aiohttp.ClientSession() as session:
                return await self._send(session, url, payload, headers)
        except TransportError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.warning(f"POST {url} failed: {type(e).__name__}: {e}")
            raise TransportError(
                f"Request to {url} failed: {type(e).__name__}: {e}",
                url=url,
                cause=e,
            ) from e

    async def _send(
        self,
        session: aiohttp.ClientSession,
        url: str,
        payload: bytes,
        headers: Dict[str, str],
    ) -> str:
        request_kwargs: Dict[str, Any] = {"data": payload, "headers": headers}
        if self.timeout_seconds:
            request_kwargs["timeout"] = aiohttp.ClientTimeout(total=self.timeout_seconds)

        async with session.post(url, **request_kwargs) as response:
            text = await response.text(errors="replace")

            if not 200 <= response.status < 300:
                truncated = text[:MAX_ERROR_BODY_CHARS]
                raise TransportError(
                    f"HTTP {response.status} from {url}: {truncated}",
                    url=url,
                    status_code=response.status,
                    response_body=truncated,
                )

            return text
