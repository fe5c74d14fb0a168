"""Resolution relay: HTTP front-end performing server-side DNS lookups.

Brief:
  Serves ``GET /resolve?domain=<name>`` with a plain-text, comma-joined list
  of IPv4 addresses and ``GET /`` with a small informational page. Every
  failure (missing domain, NXDOMAIN, resolver timeout, bad name) is answered
  with an empty 200 body.

  The FastAPI/uvicorn server is preferred; a threaded ``http.server``
  implementation is used when asyncio or uvicorn is unavailable.
"""

import asyncio
import http.server
import logging
import threading
import urllib.parse
from typing import Any, Callable, Optional, Sequence, Tuple

from .lookup import LookupFailed, ipv4_only

logger = logging.getLogger("hnsbridge.relay")

LookupFn = Callable[[str], Sequence[Tuple[int, str]]]

INDEX_HTML = (
    "<h1>Handshake Resolution Bridge API</h1>"
    "<p>Oh, hi! There's not much to see here. Query "
    "<code>/resolve?domain=&lt;name&gt;</code> for IPv4 addresses.</p>"
)

_TEXT_CT = "text/plain; charset=utf-8"
_HTML_CT = "text/html; charset=utf-8"


def relay_body(domain: Optional[str], lookup: LookupFn) -> str:
    """
    Brief: Produce the /resolve response body for domain.

    Inputs:
    - domain: requested name (None or empty means nothing to resolve)
    - lookup: callable name -> [(family, address), ...]

    Outputs:
    - str: comma-joined IPv4 addresses, or '' on missing domain/failure

    Example:
        >>> relay_body("example.test", lambda n: [(2, "192.0.2.1"), (10, "::1")])
        '192.0.2.1'
    """
    if not domain:
        return ""
    try:
        records = lookup(domain)
    except LookupFailed as exc:
        logger.info("Lookup failed for %s: %s", domain, exc)
        return ""
    except Exception:
        logger.exception("lookup raised for %s", domain)
        return ""
    return ",".join(ipv4_only(records))


def create_relay_app(lookup: LookupFn) -> Any:
    """
    Brief: Create FastAPI app implementing the relay endpoints.

    Inputs:
    - lookup: callable name -> [(family, address), ...]

    Outputs:
    - FastAPI application serving / and /resolve.

    Example:
      >>> app = create_relay_app(lambda n: [])
    """

    try:
        from fastapi import FastAPI, Request
        from fastapi.responses import HTMLResponse, PlainTextResponse
    except Exception as exc:  # pragma: no cover
        raise RuntimeError(
            "FastAPI is required for the uvicorn-based relay. Install fastapi or run with use_asyncio: false to use the threaded fallback."
        ) from exc

    app = FastAPI(
        title="hnsbridge relay",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.get("/", response_class=HTMLResponse)
    async def index() -> HTMLResponse:
        """Brief: Static informational page; doubles as a liveness probe."""
        logger.info("Received GET")
        return HTMLResponse(INDEX_HTML)

    @app.get("/resolve", response_class=PlainTextResponse)
    async def resolve(request: Request) -> PlainTextResponse:
        """
        Brief: Handle GET /resolve?domain=<name>.

        Inputs:
        - request: FastAPI Request

        Outputs:
        - 200 PlainTextResponse with comma-joined IPv4 addresses or ''.
        """
        domain = request.query_params.get("domain")
        logger.info("Received GET resolve: %s", domain)
        loop = asyncio.get_running_loop()
        body = await loop.run_in_executor(None, relay_body, domain, lookup)
        return PlainTextResponse(body)

    return app


class _ThreadedRelayRequestHandler(http.server.BaseHTTPRequestHandler):
    """Brief: Relay handler built on the standard library HTTP server.

    Notes:
    - Lookup callable is attached via the class attribute ``lookup``.
    """

    lookup: Optional[LookupFn] = None

    def _send_text(self, status_code: int, body: str, content_type: str) -> None:
        payload = body.encode("utf-8")
        self.send_response(status_code)
        self.send_header("Content-Type", content_type)
        self.send_header("Connection", "close")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        if payload:
            self.wfile.write(payload)

    def do_GET(self) -> None:  # noqa: N802 (HTTP verb name)
        """Brief: Handle GET / and GET /resolve?domain=<name>."""
        parsed = urllib.parse.urlparse(self.path)
        if parsed.path in ("/", "/index.html"):
            logger.info("Received GET")
            self._send_text(200, INDEX_HTML, _HTML_CT)
            return
        if parsed.path != "/resolve":
            self._send_text(404, "", _TEXT_CT)
            return

        params = urllib.parse.parse_qs(parsed.query)
        domain = params.get("domain", [None])[0]
        logger.info("Received GET resolve: %s", domain)
        lookup = self.lookup or (lambda name: [])
        self._send_text(200, relay_body(domain, lookup), _TEXT_CT)

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A003
        """Brief: Route handler logs through the module logger instead of stderr."""
        try:
            msg = format % args
        except Exception:
            msg = format
        logger.debug("relay HTTP: %s", msg)


class RelayServerHandle:
    """Brief: Handle for a background relay server thread.

    Inputs (constructor):
    - thread: Thread running the HTTP/uvicorn server loop.
    - server: server instance with shutdown/server_close, or a uvicorn.Server.

    Outputs:
    - RelayServerHandle with is_running() and stop().
    """

    def __init__(self, thread: threading.Thread, server: Any | None = None) -> None:
        self._thread = thread
        self._server = server

    @property
    def server(self) -> Any:
        return self._server

    def is_running(self) -> bool:
        return self._thread.is_alive()

    def stop(self, timeout: float = 5.0) -> None:
        """Brief: Best-effort stop; shuts the server down and joins the thread.

        Inputs:
        - timeout: seconds to wait for the thread
        """
        try:
            if self._server is not None:
                try:
                    if hasattr(self._server, "should_exit"):
                        # uvicorn.Server
                        self._server.should_exit = True
                    else:
                        self._server.shutdown()
                        self._server.server_close()
                except Exception:
                    logger.exception("Error while shutting down relay server")
            self._thread.join(timeout=timeout)
        except Exception:
            logger.exception("Error while stopping relay thread")


def _start_relay_server_threaded(
    host: str, port: int, lookup: LookupFn
) -> Optional[RelayServerHandle]:
    """Brief: Start the relay on ThreadingHTTPServer in a daemon thread.

    Inputs:
    - host: listen address
    - port: listen port (0 picks a free port)
    - lookup: callable name -> [(family, address), ...]

    Outputs:
    - RelayServerHandle if the server bound successfully, else None.
    """
    handler_cls = type(
        "RelayRequestHandler",
        (_ThreadedRelayRequestHandler,),
        {"lookup": staticmethod(lookup)},
    )

    try:
        httpd = http.server.ThreadingHTTPServer((host, port), handler_cls)
    except OSError as exc:
        logger.error("Failed to bind threaded relay on %s:%d: %s", host, port, exc)
        return None

    def _serve() -> None:
        try:
            httpd.serve_forever()
        except Exception:  # pragma: no cover - unexpected runtime error
            logger.exception("Unhandled exception in threaded relay")

    thread = threading.Thread(target=_serve, name="hnsbridge-relay-threaded", daemon=True)
    thread.start()
    logger.info(
        "Started threaded relay on %s:%d", httpd.server_address[0], httpd.server_address[1]
    )
    return RelayServerHandle(thread, server=httpd)


def start_relay_server(
    host: str,
    port: int,
    lookup: LookupFn,
    *,
    use_asyncio: bool = True,
) -> Optional[RelayServerHandle]:
    """Brief: Start the relay, preferring uvicorn but falling back to threaded HTTP.

    Inputs:
    - host: listen address
    - port: listen port
    - lookup: callable name -> [(family, address), ...]
    - use_asyncio: False forces the threaded implementation

    Outputs:
    - RelayServerHandle if started, else None.

    Example:
      >>> handle = start_relay_server('127.0.0.1', 8053, lambda n: [])
    """
    can_use_asyncio = bool(use_asyncio)
    if can_use_asyncio:
        try:
            loop = asyncio.new_event_loop()
            loop.close()
        except PermissionError as exc:  # pragma: no cover - restricted sandboxes
            logger.warning(
                "Asyncio loop creation failed for relay; falling back to threaded HTTP server: %s",
                exc,
            )
            can_use_asyncio = False

    if not can_use_asyncio:
        return _start_relay_server_threaded(host, port, lookup)

    try:
        import uvicorn

        app = create_relay_app(lookup)
    except (ImportError, RuntimeError) as exc:  # pragma: no cover
        logger.error("uvicorn/FastAPI not available for relay: %s; using threaded fallback", exc)
        return _start_relay_server_threaded(host, port, lookup)

    config = uvicorn.Config(app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)

    def _runner() -> None:
        try:
            server.run()
        except Exception:  # pragma: no cover
            logger.exception("Unhandled exception in relay server thread")

    thread = threading.Thread(target=_runner, name="hnsbridge-relay", daemon=True)
    thread.start()
    logger.info("Started relay on %s:%d", host, port)
    return RelayServerHandle(thread, server=server)
