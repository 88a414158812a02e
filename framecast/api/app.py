import asyncio
import logging
import threading
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from framecast.api import preview, render
from framecast.config import get_settings
from framecast.exceptions import CompositionLoadError, ConfigurationError, FramecastError
from framecast.render.composition import Composition

logger = logging.getLogger(__name__)


def _status_for(exc: FramecastError) -> int:
    if isinstance(exc, CompositionLoadError):
        return 404
    if isinstance(exc, ConfigurationError):
        return 400
    return 500


def create_app(composition: Composition) -> FastAPI:
    """FastAPI app serving the preview player and render jobs for ``composition``."""
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        yield
        # Shutdown: stop render jobs that are still running
        for pipeline in app.state.jobs.values():
            pipeline.cancel()
        tasks = [t for t in app.state.tasks.values() if not t.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.composition = composition
    app.state.feeds = None
    app.state.jobs = {}
    app.state.tasks = {}

    @app.exception_handler(FramecastError)
    async def framecast_exception_handler(request: Request, exc: FramecastError) -> JSONResponse:
        return JSONResponse(
            status_code=_status_for(exc),
            content={"error": exc.to_error_info().model_dump()},
        )

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy", "app": settings.app_name, "version": settings.app_version}

    app.include_router(preview.router, tags=["preview"])
    app.include_router(render.router, tags=["render"])
    return app


class PreviewServer:
    """Runs the preview app with uvicorn on a background thread."""

    def __init__(
        self,
        composition: Composition,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ):
        settings = get_settings()
        self.composition = composition
        self.host = host or settings.preview_host
        self.port = port if port is not None else settings.preview_port
        self.app = create_app(composition)
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def start(self, timeout: float = 10.0) -> str:
        """Start serving and return the player URL once the server is up."""
        if self._thread is not None:
            return self.url

        config = uvicorn.Config(self.app, host=self.host, port=self.port, log_level="warning")
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(target=self._server.run, name="framecast-preview", daemon=True)
        self._thread.start()

        deadline = time.monotonic() + timeout
        while not self._server.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                self.stop()
                raise ConfigurationError(f"Preview server failed to start on {self.url}", field="preview_port")
            time.sleep(0.05)

        logger.info(f"[PREVIEW] Serving {self.composition!r} at {self.url}")
        return self.url

    def stop(self, timeout: float = 5.0) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning(f"[PREVIEW] Server thread did not stop within {timeout}s")
        self._server = None
        self._thread = None

    def serve_forever(self) -> None:
        """Blocking serve on the current thread (used by the CLI)."""
        logger.info(f"[PREVIEW] Serving {self.composition!r} at {self.url}")
        uvicorn.run(self.app, host=self.host, port=self.port, log_level="warning")
