import asyncio
import json
import ssl
from typing import Any, Dict, Optional, Tuple, Union

import aiohttp
from decouple import config as dconfig
from loguru import logger

from lnbridge.lightning.exceptions import BackendConnectionError, BackendError
from lnbridge.utils import config_get_hex_str


def _parse_body(text: str) -> Any:
    if text is None or text == "":
        return None

    try:
        return json.loads(text)
    except ValueError:
        # grpc-gateway answers some errors with plain text
        return text


class LndRestStream:
    """A websocket to one of LND's streaming REST endpoints.

    Must be used as an async context manager, the socket is closed
    on exit no matter how the block is left.
    """

    def __init__(self, transport: "LndRestTransport", path: str, params: dict = None):
        self._transport = transport
        self._path = path
        self._params = params
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    async def __aenter__(self) -> "LndRestStream":
        url = self._transport.ws_url(self._path)
        logger.trace(f"Opening websocket to {url}")

        try:
            self._ws = await self._transport.session().ws_connect(
                url,
                params=self._params,
                ssl=self._transport.ssl_context,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BackendConnectionError(str(e)) from e

        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
            logger.trace(f"Closed websocket to {self._path}")

    async def send_json(self, data: Dict) -> None:
        try:
            await self._ws.send_str(json.dumps(data))
        except (aiohttp.ClientError, ConnectionError) as e:
            raise BackendConnectionError(str(e)) from e

    async def receive_json(self) -> Optional[Dict]:
        """Next JSON frame, or None once the server closed the stream"""
        msg = await self._ws.receive()

        if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
            try:
                frame = json.loads(msg.data)
            except ValueError as e:
                raise BackendError(f"{self._path}: malformed frame {msg.data!r}") from e

            # every LND stream frame is an object with `result` or `error`
            if not isinstance(frame, dict):
                raise BackendError(f"{self._path}: unexpected frame {msg.data!r}")

            return frame

        if msg.type in (
            aiohttp.WSMsgType.CLOSE,
            aiohttp.WSMsgType.CLOSING,
            aiohttp.WSMsgType.CLOSED,
        ):
            return None

        raise BackendConnectionError(f"{self._path}: {self._ws.exception()}")


class LndRestTransport:
    """Request/response calls and websocket streams against LND's REST proxy.

    Every call carries the macaroon header. Numbers and bytes are passed
    through unchanged, callers are responsible for LND's encoding
    (decimal strings for 64 bit integers, base64 for bytes).
    """

    def __init__(
        self,
        url: str,
        macaroon: str,
        cert: Optional[bytes] = None,
        request_timeout: float = 30,
    ):
        self._url = url.rstrip("/")
        self._headers = {"Grpc-Metadata-macaroon": macaroon}
        self._request_timeout = aiohttp.ClientTimeout(total=request_timeout)
        self._session: Optional[aiohttp.ClientSession] = None

        # True verifies against the system CAs
        self.ssl_context: Union[bool, ssl.SSLContext] = True
        if cert is not None:
            self.ssl_context = ssl.create_default_context(cadata=cert.decode())

    @classmethod
    def from_config(cls) -> "LndRestTransport":
        macaroon = config_get_hex_str(dconfig("lnd_macaroon"), name="lnd_macaroon")
        cert = bytes.fromhex(config_get_hex_str(dconfig("lnd_cert"), name="lnd_cert"))

        return cls(
            url=dconfig("lnd_rest_url"),
            macaroon=macaroon,
            cert=cert,
            request_timeout=dconfig("lnd_request_timeout", default=30, cast=float),
        )

    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            # no total timeout on the session, streams live as long as the caller wants
            self._session = aiohttp.ClientSession(
                headers=self._headers,
                timeout=aiohttp.ClientTimeout(total=None),
            )

        return self._session

    def url(self, path: str) -> str:
        return f"{self._url}/{path}"

    def ws_url(self, path: str) -> str:
        url = self.url(path)
        if url.startswith("https://"):
            return "wss://" + url[len("https://") :]
        if url.startswith("http://"):
            return "ws://" + url[len("http://") :]

        return url

    async def request(
        self, method: str, path: str, data: Optional[Dict] = None
    ) -> Tuple[int, Any]:
        """Returns the HTTP status code and the parsed JSON body"""
        logger.trace(f"{method} {path}")

        try:
            async with self.session().request(
                method,
                self.url(path),
                json=data,
                ssl=self.ssl_context,
                timeout=self._request_timeout,
            ) as resp:
                text = await resp.text()
                return resp.status, _parse_body(text)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BackendConnectionError(f"{method} {path}: {e}") from e

    def open_stream(self, path: str, params: dict = None) -> LndRestStream:
        return LndRestStream(self, path, params)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
