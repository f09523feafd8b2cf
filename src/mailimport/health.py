"""
HTTP endpoint for the progress display and service health.
"""

from __future__ import annotations
import json
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from threading import Thread
from typing import Any, Callable, Dict, Optional
from mailimport.logging import logger


class ProgressHandler(BaseHTTPRequestHandler):
    """
    GET /progress - current ProgressState (404 when no import is running)
    GET /health   - scheduler health
    """

    progress_func: Optional[Callable[[], Optional[Dict[str, Any]]]] = None
    health_func: Optional[Callable[[], Dict[str, Any]]] = None

    def do_GET(self) -> None:
        path = self.path.rstrip("/") or "/"
        try:
            if path == "/progress":
                self._handle_progress()
            elif path == "/health":
                self._handle_health()
            elif path in ("/", "/status"):
                self._send_response(200, {"service": "mail-import", "status": "running"})
            else:
                self._send_response(404, {"error": "Not found"})
        except BrokenPipeError:
            # display closed the connection before the response went out
            pass

    def _handle_progress(self) -> None:
        if self.progress_func is None:
            self._send_response(503, {"error": "Progress not configured"})
            return
        try:
            state = self.progress_func()
        except Exception as e:
            logger.error(f"Progress lookup failed: {e}")
            self._send_response(500, {"error": str(e)})
            return
        if state is None:
            self._send_response(404, {"error": "No import in progress"})
        else:
            self._send_response(200, state)

    def _handle_health(self) -> None:
        if self.health_func is None:
            self._send_response(200, {"status": "healthy", "scheduler": "disabled"})
            return
        health = self.health_func()
        self._send_response(200 if health.get("status") == "healthy" else 503, health)

    def _send_response(self, status_code: int, data: dict) -> None:
        self.send_response(status_code)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        self.wfile.write(json.dumps(data, indent=2).encode("utf-8"))

    def log_message(self, format: str, *args) -> None:
        logger.debug(f"HTTP {format % args}")


class ProgressServer:
    """Serves ProgressHandler on a daemon thread."""

    def __init__(
        self,
        port: int = 8080,
        progress_func: Optional[Callable[[], Optional[Dict[str, Any]]]] = None,
        health_func: Optional[Callable[[], Dict[str, Any]]] = None,
        host: str = "127.0.0.1",
    ) -> None:
        self.host = host
        self.port = port
        self.server: Optional[ThreadingHTTPServer] = None
        self.thread: Optional[Thread] = None
        handler = type("BoundProgressHandler", (ProgressHandler,), {})
        handler.progress_func = staticmethod(progress_func) if progress_func else None
        handler.health_func = staticmethod(health_func) if health_func else None
        self._handler = handler

    def start(self) -> None:
        if self.server:
            logger.warning("Progress server is already running")
            return
        self.server = ThreadingHTTPServer((self.host, self.port), self._handler)
        self.port = self.server.server_address[1]
        self.thread = Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()
        logger.info(f"Progress server listening on {self.host}:{self.port}")

    def stop(self) -> None:
        if self.server:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            logger.info("Progress server stopped")
