"""Per-port HTTP instruction server."""

from __future__ import annotations

import logging
import socket
import threading
from typing import Callable

import uvicorn
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from chaseai import __version__
from chaseai.errors import BindError, ChaseAIError, InternalError
from chaseai.generator import ConfigFormat
from chaseai.manager import ContextManager
from chaseai.schemas import (
    ErrorResponse,
    InstructionContext,
    NetworkConfig,
    NetworkInterface,
    VerifyRequest,
    VerifyResponse,
)
from chaseai.verification import VerificationService

logger = logging.getLogger(__name__)

LISTEN_BACKLOG = 128

# In-flight /verify prompts have no timeout, so stop() gives up waiting eventually
DEFAULT_STOP_TIMEOUT = 10.0

ConfigProvider = Callable[[], NetworkConfig]

HTTP_ERROR_CODES = {
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


def create_app(
    port: int,
    manager: ContextManager,
    config_provider: ConfigProvider,
    verification: VerificationService,
) -> FastAPI:
    """Build the FastAPI app serving one port.

    Context lookups are keyed strictly by `port`, so two servers sharing a
    manager never see each other's context.
    """
    app = FastAPI(
        title=f"ChaseAI Instruction Server :{port}",
        description="Instruction context and verification endpoints for AI agents",
        version=__version__,
    )

    @app.get("/health")
    async def health() -> Response:
        """Liveness check; touches no state."""
        return Response(status_code=200)

    @app.get("/context", response_model=InstructionContext)
    def get_context() -> InstructionContext:
        """Return the instruction context bound to this port."""
        context = manager.get_context(port)
        if context is None:
            raise HTTPException(
                status_code=404,
                detail=f"No instruction context bound to port {port}",
            )
        return context

    @app.get("/config")
    def get_config(format: str | None = None) -> PlainTextResponse:
        """Render the current network configuration (json by default)."""
        fmt = ConfigFormat.parse(format)
        return PlainTextResponse(fmt.render(config_provider()), media_type=fmt.media_type)

    @app.post("/verify", response_model=VerifyResponse)
    def verify(request: VerifyRequest) -> VerifyResponse:
        """Ask a human to approve an action.

        Declared sync so the blocking prompt runs in the worker threadpool and
        other requests keep being served.
        """
        return verification.verify(request)

    @app.exception_handler(ChaseAIError)
    async def chaseai_exception_handler(request: Request, exc: ChaseAIError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{exc.error_code} on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(detail=str(exc), error_code=exc.error_code).model_dump(),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                detail=str(exc.detail),
                error_code=HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
            ).model_dump(),
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                detail=str(exc),
                error_code="INTERNAL_ERROR",
            ).model_dump(),
        )

    return app


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind and listen on host:port.

    Raises:
        BindError: If the address is unavailable
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(LISTEN_BACKLOG)
        sock.set_inheritable(True)
    except OSError as e:
        sock.close()
        raise BindError(host, port, str(e)) from e
    return sock


class _ReadyServer(uvicorn.Server):
    """uvicorn server that fires a one-shot event once it is accepting."""

    def __init__(self, config: uvicorn.Config, ready: threading.Event):
        super().__init__(config)
        self._ready = ready

    async def startup(self, sockets=None) -> None:
        await super().startup(sockets=sockets)
        if not self.should_exit:
            self._ready.set()


class InstructionServer:
    """One HTTP listener for one (port, interface) pair.

    start() binds synchronously and serves from a background thread;
    stop() drains in-flight responses and is safe to call repeatedly.
    """

    def __init__(
        self,
        port: int,
        interface: NetworkInterface,
        manager: ContextManager,
        verification: VerificationService,
        config_provider: ConfigProvider | None = None,
    ):
        self.port = port
        self.interface = interface
        self.manager = manager
        self.config_provider = config_provider or NetworkConfig
        self.app = create_app(port, manager, self.config_provider, verification)

        self._state_lock = threading.Lock()
        self._server: _ReadyServer | None = None
        self._thread: threading.Thread | None = None
        self._sock: socket.socket | None = None
        self._ready = threading.Event()

    @property
    def host(self) -> str:
        return str(self.interface.ip_address)

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Bind the listener and start serving in the background.

        Returns as soon as the socket is bound; the server is starting, not
        necessarily ready (see wait_ready).

        Raises:
            BindError: If the port cannot be bound
            InternalError: If the server was already started
        """
        with self._state_lock:
            if self._server is not None:
                raise InternalError(f"Server on port {self.port} is already started")

            sock = bind_socket(self.host, self.port)
            config = uvicorn.Config(
                self.app,
                log_level="warning",
                log_config=None,
                access_log=False,
            )
            self._ready.clear()
            server = _ReadyServer(config, self._ready)
            thread = threading.Thread(
                target=server.run,
                kwargs={"sockets": [sock]},
                name=f"chaseai-server-{self.port}",
                daemon=True,
            )
            self._server, self._thread, self._sock = server, thread, sock
            thread.start()

        logger.info(f"Starting InstructionServer on {self.host}:{self.port}")

    def wait_ready(self, timeout: float | None = None) -> bool:
        """Wait until the server is accepting requests."""
        return self._ready.wait(timeout)

    def stop(self, timeout: float = DEFAULT_STOP_TIMEOUT) -> None:
        """Signal shutdown and wait for in-flight responses to drain."""
        with self._state_lock:
            server, thread, sock = self._server, self._thread, self._sock
            self._server = self._thread = self._sock = None

        if server is None:
            return

        server.should_exit = True
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning(
                    f"Server on port {self.port} still draining after {timeout}s; leaving it to finish"
                )
        if sock is not None:
            sock.close()
        self._ready.clear()

        logger.info(f"Stopped InstructionServer on {self.host}:{self.port}")
