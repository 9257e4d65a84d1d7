"""HTTP server adapter for the Innkeeper API.

Provides a simple HTTP server using Python's built-in http.server module.
The blocking server loop runs in a worker thread; each request's handler
coroutine is scheduled onto the service event loop and awaited from that
thread.

Supports optional API key authentication via the Authorization header
(Bearer token) or X-API-Key. The acting user is taken from X-User-Id.
"""

import asyncio
import hmac
import json
import logging
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qsl, urlsplit

from innkeeper.adapters.api.handlers import ApiHandlers, ApiRequest

logger = logging.getLogger(__name__)

MAX_BODY_SIZE = 1024 * 1024
REQUEST_TIMEOUT_SECONDS = 30


def make_api_handler(
    api: ApiHandlers,
    event_loop: asyncio.AbstractEventLoop,
    api_key: str | None,
    require_auth: bool,
) -> type[BaseHTTPRequestHandler]:
    """Factory to create an ApiHTTPHandler class with instance-specific state.

    Args:
        api: Route handlers backed by the core services
        event_loop: Event loop the core services run on
        api_key: Optional API key for authentication
        require_auth: Whether authentication is required

    Returns:
        An ApiHTTPHandler class configured with the provided dependencies
    """

    class ApiHTTPHandler(BaseHTTPRequestHandler):
        """HTTP request handler for the JSON API."""

        def _check_auth(self) -> bool:
            """Check if request is authenticated.

            Supports two authentication methods:
            1. Authorization: Bearer <api_key>
            2. X-API-Key: <api_key>
            """
            if not require_auth:
                return True

            if not api_key:
                return False

            auth_header = self.headers.get("Authorization", "")
            if auth_header.startswith("Bearer "):
                return hmac.compare_digest(auth_header[7:], api_key)

            api_key_header = self.headers.get("X-API-Key", "")
            if api_key_header:
                return hmac.compare_digest(api_key_header, api_key)

            return False

        def do_GET(self) -> None:
            if self.path == "/health":
                # Health check is always public
                self._send_json(200, {"status": "healthy"})
                return
            self._dispatch("GET")

        def do_POST(self) -> None:
            self._dispatch("POST")

        def do_PUT(self) -> None:
            self._dispatch("PUT")

        def do_DELETE(self) -> None:
            self._dispatch("DELETE")

        def _dispatch(self, method: str) -> None:
            if not self._check_auth():
                self._send_json(
                    401,
                    {"status": "error", "message": "Unauthorized: invalid or missing API key"},
                )
                return

            body: dict[str, Any] = {}
            if method in ("POST", "PUT"):
                content_length = int(self.headers.get("Content-Length", 0))
                if content_length > MAX_BODY_SIZE:
                    self._send_json(413, {"status": "error", "message": "Request body too large"})
                    return

                raw = self.rfile.read(content_length) if content_length > 0 else b""
                try:
                    body = json.loads(raw) if raw else {}
                except json.JSONDecodeError:
                    self._send_json(400, {"status": "error", "message": "Invalid JSON body"})
                    return
                if not isinstance(body, dict):
                    self._send_json(
                        400, {"status": "error", "message": "JSON body must be an object"}
                    )
                    return

            url = urlsplit(self.path)
            request = ApiRequest(
                method=method,
                path=url.path,
                query=dict(parse_qsl(url.query)),
                body=body,
                user_id=self.headers.get("X-User-Id") or None,
            )

            future = asyncio.run_coroutine_threadsafe(api.handle(request), event_loop)
            try:
                status, payload = future.result(timeout=REQUEST_TIMEOUT_SECONDS)
            except Exception as e:
                # Log full exception server-side, return generic error to client
                logger.error(f"Error handling {method} {url.path}: {e}", exc_info=True)
                self._send_json(500, {"status": "error", "message": "Internal server error"})
                return

            self._send_json(status, payload)

        def _send_json(self, status: int, data: dict[str, Any]) -> None:
            encoded = json.dumps(data).encode()
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(encoded)))
            self.end_headers()
            self.wfile.write(encoded)

        def log_message(self, format: str, *args: Any) -> None:
            """Log HTTP request."""
            logger.debug(f"HTTP {self.client_address[0]}: {format % args}")

    return ApiHTTPHandler


class ApiHTTPServer:
    """JSON API HTTP server adapter.

    Optionally requires API key authentication for all routes except /health.
    """

    def __init__(
        self,
        api: ApiHandlers,
        host: str = "0.0.0.0",
        port: int = 8080,
        api_key: str | None = None,
        require_auth: bool = False,
    ):
        """Initialize the HTTP server.

        Args:
            api: ApiHandlers instance to route requests to.
            host: Host to listen on (default 0.0.0.0).
            port: Port to listen on (default 8080).
            api_key: Optional API key for authentication.
            require_auth: Whether to require authentication (default False).
                         If True, api_key must be provided.

        Raises:
            ValueError: If require_auth is True but no api_key is given.
        """
        if require_auth and not api_key:
            raise ValueError(
                "require_auth=True but no API key provided. "
                "Set API_KEY or disable API_REQUIRE_AUTH."
            )

        self.api = api
        self.host = host
        self.port = port
        self.api_key = api_key
        self.require_auth = require_auth
        self.server: ThreadingHTTPServer | None = None
        self._server_task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        """Start the HTTP server."""
        if self.require_auth:
            logger.info(
                f"Starting API HTTP server on {self.host}:{self.port} "
                "(with API key authentication)"
            )
        else:
            logger.info(f"Starting API HTTP server on {self.host}:{self.port}")

        handler_class = make_api_handler(
            api=self.api,
            event_loop=asyncio.get_running_loop(),
            api_key=self.api_key,
            require_auth=self.require_auth,
        )

        self.server = ThreadingHTTPServer((self.host, self.port), handler_class)
        self._server_task = asyncio.create_task(self._run_server())
        logger.info("API HTTP server started")

    async def _run_server(self) -> None:
        """Run the HTTP server loop in a thread pool."""
        if not self.server:
            return

        try:
            await asyncio.to_thread(self.server.serve_forever)
        except asyncio.CancelledError:
            # Normal shutdown
            pass
        except Exception as e:
            logger.error(f"API HTTP server error: {e}", exc_info=True)

    async def stop(self) -> None:
        """Stop the HTTP server."""
        if self.server:
            # shutdown() blocks until serve_forever returns
            await asyncio.to_thread(self.server.shutdown)
            self.server.server_close()
        if self._server_task:
            self._server_task.cancel()
            try:
                await self._server_task
            except asyncio.CancelledError:
                pass
        logger.info("API HTTP server stopped")
