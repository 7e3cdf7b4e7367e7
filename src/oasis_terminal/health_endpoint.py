"""Keep-alive and manual trigger HTTP server.

Endpoints:
- ``/`` - plain-text keep-alive line
- ``/health`` - JSON status (uptime, job counters, recent errors)
- ``/run/<job>`` - run one job now; answers ``ok`` or ``failed``
- ``/test-forex`` - prime gold at 2000 and run the forex watchdog
- ``/test-forex-weekly`` - seed sample FX headlines and run the forex weekly

Trigger routes never return internal error detail; the job wrapper logs it.

Usage:
    from oasis_terminal.health_endpoint import start_health_server
    start_health_server(ctx, port=3000)
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, Optional

from .jobs import JOBS, JobContext, run_job, trigger_forex_test, trigger_forex_weekly_test
from .logging_utils import get_logger

log = get_logger("health_endpoint")

KEEPALIVE_TEXT = b"Oasis Ecosystem: Systems Operational."

_HEALTH_LOCK = threading.Lock()
_HEALTH_STATUS: Dict[str, Any] = {
    "status": "starting",
    "start_time": None,
    "jobs_ok": 0,
    "jobs_failed": 0,
    "last_job": None,
    "errors": [],
}


def update_health_status(
    status: Optional[str] = None,
    job: Optional[str] = None,
    ok: Optional[bool] = None,
) -> None:
    """Record the outcome of a job run (keeps the last 10 failures)."""
    now = datetime.now(timezone.utc).isoformat()
    with _HEALTH_LOCK:
        if status:
            _HEALTH_STATUS["status"] = status
        if job is None or ok is None:
            return
        _HEALTH_STATUS["last_job"] = {"name": job, "ok": ok, "time": now}
        if ok:
            _HEALTH_STATUS["jobs_ok"] += 1
        else:
            _HEALTH_STATUS["jobs_failed"] += 1
            _HEALTH_STATUS["errors"].append({"time": now, "job": job})
            _HEALTH_STATUS["errors"] = _HEALTH_STATUS["errors"][-10:]


def health_snapshot() -> Dict[str, Any]:
    with _HEALTH_LOCK:
        snap = dict(_HEALTH_STATUS)
        snap["errors"] = list(_HEALTH_STATUS["errors"][-5:])
    uptime = 0
    if snap["start_time"]:
        start = datetime.fromisoformat(snap["start_time"])
        uptime = int((datetime.now(timezone.utc) - start).total_seconds())
    snap["uptime_seconds"] = uptime
    snap["timestamp"] = datetime.now(timezone.utc).isoformat()
    return snap


def _tracked(name: str, fn: Callable[[], bool]) -> bool:
    ok = fn()
    update_health_status(job=name, ok=ok)
    return ok


class HealthCheckHandler(BaseHTTPRequestHandler):
    """Request handler; ``ctx`` is bound by :func:`make_handler`."""

    ctx: JobContext

    def log_message(self, format, *args):
        """Suppress default HTTP server logging to avoid noise."""

    def _send(self, code: int, body: bytes, content_type: str = "text/plain") -> None:
        self.send_response(code)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        path = self.path.split("?", 1)[0].rstrip("/") or "/"
        if path == "/":
            self._send(200, KEEPALIVE_TEXT)
        elif path == "/health":
            self._send(200, json.dumps(health_snapshot(), indent=2).encode(), "application/json")
        elif path == "/test-forex":
            log.info("manual_trigger route=test-forex")
            self._ack(_tracked("forex_watchdog", lambda: trigger_forex_test(self.ctx)))
        elif path == "/test-forex-weekly":
            log.info("manual_trigger route=test-forex-weekly")
            self._ack(_tracked("forex_weekly", lambda: trigger_forex_weekly_test(self.ctx)))
        elif path.startswith("/run/"):
            name = path[len("/run/"):]
            if name not in JOBS:
                self._send(404, b"Not Found")
                return
            log.info("manual_trigger job=%s", name)
            self._ack(_tracked(name, lambda: run_job(self.ctx, name)))
        else:
            self._send(404, b"Not Found")

    def _ack(self, ok: bool) -> None:
        if ok:
            self._send(200, b"ok")
        else:
            self._send(500, b"failed")


def make_handler(ctx: JobContext) -> type:
    return type("BoundHealthCheckHandler", (HealthCheckHandler,), {"ctx": ctx})


def make_server(ctx: JobContext, port: int, host: str = "0.0.0.0") -> ThreadingHTTPServer:
    return ThreadingHTTPServer((host, port), make_handler(ctx))


def _run_server(server: ThreadingHTTPServer) -> None:
    """Serve until shutdown (blocking)."""
    log.info("health_server_started port=%d", server.server_address[1])
    try:
        server.serve_forever()
    finally:
        server.server_close()


def start_health_server(ctx: JobContext, port: int = 3000) -> ThreadingHTTPServer:
    """Start the server on a daemon thread and return it.

    Call ``server.shutdown()`` to stop it.
    """
    with _HEALTH_LOCK:
        _HEALTH_STATUS["start_time"] = datetime.now(timezone.utc).isoformat()
        _HEALTH_STATUS["status"] = "healthy"

    server = make_server(ctx, port)
    thread = threading.Thread(target=_run_server, args=(server,), daemon=True)
    thread.start()
    log.info("health_server_thread_started port=%d", port)
    return server
