"""Observability HTTP surface for the MemOS Cloud plugin.

A small JSON API over the telemetry collector and the runtime config. The
HTML front-end is served elsewhere; CORS is open so it can live anywhere.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import ConfigValidationError, validate_overrides
from .prompts import get_prompt_preview
from .telemetry import StatsCollector

logger = logging.getLogger(__name__)

STATS_LOG_LIMIT = 20
STARTUP_TIMEOUT_SECONDS = 2.0


class PromptPreviewRequest(BaseModel):
    """Request model for /api/prompt/preview."""

    style: str = Field(default="default", description="Prompt style (default, compact)")
    template: Optional[str] = Field(default=None, description="Custom prompt template")


def _error(message: str, errors: Optional[list] = None, status_code: int = 400) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "errors": errors or [message]},
    )


def create_dashboard_app(
    stats: StatsCollector,
    runtime_config: Callable[[], Dict[str, Any]],
    apply_overrides: Optional[Callable[[Dict[str, Any]], None]] = None,
    clear_overrides: Optional[Callable[[], None]] = None
) -> FastAPI:
    """Build the dashboard application.

    Args:
        stats: Telemetry collector to expose.
        runtime_config: Returns the current effective config (secrets masked).
        apply_overrides: Stores validated overrides; may raise
            ConfigValidationError. Defaults to validating and saving into
            ``stats``.
        clear_overrides: Drops all overrides. Defaults to ``stats``.
    """

    def _default_apply(values: Dict[str, Any]) -> None:
        valid, errors = validate_overrides(values)
        if not valid:
            raise ConfigValidationError(errors)
        stats.set_config_overrides(values)

    apply = apply_overrides or _default_apply
    clear = clear_overrides or stats.clear_config_overrides

    app = FastAPI(
        title="MemOS Cloud Dashboard",
        description="Recall/capture telemetry and runtime configuration",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.get("/api/stats")
    def read_stats():
        return {"stats": stats.get_stats(), "logs": stats.get_logs("all", STATS_LOG_LIMIT)}

    @app.get("/api/logs")
    def read_logs(type: str = "all", limit: int = 50):
        return {"logs": stats.get_logs(type, limit)}

    @app.get("/api/config")
    def read_config():
        return {"runtime": runtime_config(), "overrides": stats.get_config_overrides()}

    @app.post("/api/config")
    async def update_config(request: Request):
        try:
            body = await request.json()
        except ValueError:
            return _error("Invalid body")
        if not isinstance(body, dict):
            return _error("Invalid body")
        try:
            apply(body)
        except ConfigValidationError as e:
            return _error(" ".join(e.errors), e.errors)
        return {"saved": True}

    @app.delete("/api/config")
    def reset_config():
        clear()
        return {"cleared": True}

    @app.post("/api/prompt/preview")
    def preview_prompt(body: Optional[PromptPreviewRequest] = None):
        body = body or PromptPreviewRequest()
        return {"preview": get_prompt_preview(body.style, body.template)}

    @app.post("/api/stats/flush")
    def flush_stats():
        stats.flush()
        return {"flushed": True}

    return app


class DashboardServer:
    """Runs the dashboard with uvicorn on a daemon thread.

    The thread never keeps the host process alive. Bind failures are logged
    and leave the plugin running without a dashboard.
    """

    def __init__(
        self,
        app: FastAPI,
        host: str = "127.0.0.1",
        port: int = 9898,
        startup_timeout: float = STARTUP_TIMEOUT_SECONDS
    ):
        self._app = app
        self._host = host
        self._port = port
        self._startup_timeout = startup_timeout
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self._port}"

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start serving and wait briefly for uvicorn to bind.

        Returns:
            True once the server reports it has started.
        """
        if self.is_running:
            return True
        config = uvicorn.Config(self._app, host=self._host, port=self._port, log_level="warning")
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(
            target=self._server.run,
            name="memos-cloud-dashboard",
            daemon=True,
        )
        self._thread.start()

        deadline = time.monotonic() + self._startup_timeout
        while not self._server.started and self._thread.is_alive() and time.monotonic() < deadline:
            time.sleep(0.05)

        if self._server.started:
            logger.info("[memos-cloud] Dashboard running at %s", self.url)
            return True
        if not self._thread.is_alive():
            logger.warning("[memos-cloud] Dashboard failed to start on %s", self.url)
            self._server = None
            self._thread = None
        else:
            logger.debug("[memos-cloud] Dashboard still starting on %s", self.url)
        return False

    def stop(self, timeout: float = 2.0) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        self._server = None
        self._thread = None
