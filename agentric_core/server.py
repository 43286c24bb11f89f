"""
AgentricAI Orchestration Core - HTTP Adapter & CLI

Thin Starlette presentation layer over AgentOrchestrator, served by uvicorn.

Endpoints:
    GET  /health                    system health snapshot (503 unless operational)
    GET  /api/v1/system/info        version, status and redacted configuration
    GET  /api/v1/agents/status      every registered agent
    POST /api/v1/student/interact   {"studentId", "interaction"}
    POST /api/v1/admin/message      {"source", "message"}
    POST /api/v1/emergency          {"type", "data"}
    POST /api/v1/emergency/clear    {"clearedBy", "reason"}, X-Admin-Token header
    GET  /metrics                   Prometheus exposition format

Usage:
    python -m agentric_core serve --port 3000
    python -m agentric_core health --json
"""

import asyncio
import dataclasses
import hmac
import json
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import click
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from . import __version__
from .config import get_all_configs, orchestrator_config, server_config
from .exceptions import AgentricError, NotFoundError
from .health import HealthStatus, format_health_text
from .metrics import METRICS_CONTENT_TYPE, metrics_manager
from .orchestrator import AgentOrchestrator
from .telemetry import configure_logging

logger = logging.getLogger("agentric_server")

ADMIN_TOKEN_HEADER = "X-Admin-Token"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(status_code: int, message: str, details: Optional[Dict[str, Any]] = None) -> JSONResponse:
    body: Dict[str, Any] = {"error": message, "timestamp": _now()}
    if details:
        body["details"] = details
    return JSONResponse(body, status_code=status_code)


async def _json_body(request: Request, *required: str) -> Tuple[Optional[Dict[str, Any]], Optional[JSONResponse]]:
    """Parse a JSON object body and check ``required`` keys are present."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None, _error(400, "Request body must be valid JSON")
    if not isinstance(body, dict):
        return None, _error(400, "Request body must be a JSON object")
    missing = [key for key in required if body.get(key) in (None, "")]
    if missing:
        return None, _error(400, f"Missing required fields: {', '.join(missing)}")
    return body, None


# ══════════════════════════════════════════════════════════════════════════════
# APPLICATION
# ══════════════════════════════════════════════════════════════════════════════

def create_app(orchestrator: Optional[AgentOrchestrator] = None,
               admin_token: Optional[str] = None,
               debug: bool = False) -> Starlette:
    """Build the Starlette app. The orchestrator is initialized in the lifespan."""
    orchestrator = orchestrator or AgentOrchestrator()
    admin_token = server_config.admin_token if admin_token is None else admin_token

    @asynccontextmanager
    async def lifespan(app):
        """Starlette lifespan: initialize, yield, shut down."""
        # ── Startup ──
        await orchestrator.initialize()
        logger.info(f"AgentricAI University orchestrator ready: {len(orchestrator.registry)} agents")

        yield

        # ── Shutdown ──
        await orchestrator.shutdown()
        logger.info("AgentricAI University orchestrator stopped")

    async def handle_health(request: Request) -> JSONResponse:
        health = orchestrator.get_system_health()
        status_code = 200 if orchestrator.is_operational else 503
        return JSONResponse(health.to_dict(), status_code=status_code)

    async def handle_system_info(request: Request) -> JSONResponse:
        return JSONResponse({
            "name": "AgentricAI University",
            "version": __version__,
            "status": orchestrator.status.value,
            "environment": server_config.environment,
            "agents": orchestrator.registry.counts(),
            "skippedAgents": [failure.agent_id for failure in orchestrator.skipped_agents],
            "emergencyMode": orchestrator.state.emergency_mode,
            "config": get_all_configs(),
            "timestamp": _now(),
        })

    async def handle_agents_status(request: Request) -> JSONResponse:
        return JSONResponse({"agents": orchestrator.agents_status(), "timestamp": _now()})

    async def handle_student_interact(request: Request) -> JSONResponse:
        body, error = await _json_body(request, "studentId", "interaction")
        if error:
            return error
        try:
            result = await orchestrator.process_student_interaction(str(body["studentId"]),
                                                                    body["interaction"])
        except AgentricError as e:
            logger.error(f"Student interaction failed: {e}")
            return _error(500, "Student interaction failed", e.to_dict())
        return JSONResponse(result.to_dict())

    async def handle_admin_message(request: Request) -> JSONResponse:
        body, error = await _json_body(request, "source", "message")
        if error:
            return error
        try:
            result = await orchestrator.process_admin_message(str(body["source"]), body["message"])
        except NotFoundError as e:
            return _error(503, "Administrative agent not available", e.to_dict())
        except AgentricError as e:
            logger.error(f"Admin message failed: {e}")
            return _error(500, "Admin message failed", e.to_dict())
        return JSONResponse(result.to_dict())

    async def handle_emergency(request: Request) -> JSONResponse:
        body, error = await _json_body(request, "type")
        if error:
            return error
        data = body.get("data") or {}
        if not isinstance(data, dict):
            data = {"value": data}
        outcome = await orchestrator.handle_emergency(str(body["type"]), data)
        return JSONResponse({**outcome.to_dict(), "emergencyMode": orchestrator.state.emergency_mode})

    async def handle_emergency_clear(request: Request) -> JSONResponse:
        if not admin_token:
            return _error(403, "Emergency clear is disabled: no admin token configured")
        supplied = request.headers.get(ADMIN_TOKEN_HEADER, "")
        if not hmac.compare_digest(supplied.encode(), admin_token.encode()):
            return _error(401, "Invalid admin token")
        body, error = await _json_body(request, "clearedBy")
        if error:
            return error
        cleared = orchestrator.clear_emergency(str(body["clearedBy"]), str(body.get("reason") or ""))
        return JSONResponse({"cleared": cleared, "emergencyMode": orchestrator.state.emergency_mode,
                             "timestamp": _now()})

    async def handle_metrics(request: Request) -> Response:
        return Response(metrics_manager.get_metrics_text(), media_type=METRICS_CONTENT_TYPE)

    async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
        return _error(exc.status_code, exc.detail or "Error")

    app = Starlette(
        debug=debug,
        lifespan=lifespan,
        routes=[
            Route("/health", endpoint=handle_health, methods=["GET"]),
            Route("/api/v1/system/info", endpoint=handle_system_info, methods=["GET"]),
            Route("/api/v1/agents/status", endpoint=handle_agents_status, methods=["GET"]),
            Route("/api/v1/student/interact", endpoint=handle_student_interact, methods=["POST"]),
            Route("/api/v1/admin/message", endpoint=handle_admin_message, methods=["POST"]),
            Route("/api/v1/emergency", endpoint=handle_emergency, methods=["POST"]),
            Route("/api/v1/emergency/clear", endpoint=handle_emergency_clear, methods=["POST"]),
            Route("/metrics", endpoint=handle_metrics, methods=["GET"]),
        ],
        exception_handlers={HTTPException: handle_http_exception},
    )
    app.state.orchestrator = orchestrator
    return app


# ══════════════════════════════════════════════════════════════════════════════
# CLI
# ══════════════════════════════════════════════════════════════════════════════

@click.group()
def main():
    """AgentricAI University orchestration core."""


@main.command()
@click.option("--host", default=server_config.host, help="Interface to bind")
@click.option("--port", default=server_config.port, help="Port to listen on")
@click.option("--debug", is_flag=True, default=server_config.debug, help="Enable debug mode")
def serve(host: str, port: int, debug: bool) -> int:
    """Start the HTTP server."""
    import uvicorn

    configure_logging("DEBUG" if debug else server_config.log_level,
                      server_config.log_file, server_config.log_format)
    app = create_app(debug=debug)

    logger.info(f"Starting AgentricAI University orchestrator on http://{host}:{port}")
    try:
        uvicorn.run(app, host=host, port=port, log_config=None)
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
    return 0


@main.command()
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
def health(as_json: bool) -> None:
    """Initialize the system once and print a health snapshot."""
    configure_logging("WARNING", "", "text")
    orchestrator = AgentOrchestrator(
        config=dataclasses.replace(orchestrator_config, health_check_interval=0),
    )

    async def check():
        try:
            await orchestrator.initialize()
            return orchestrator.get_system_health()
        finally:
            await orchestrator.shutdown()

    try:
        report = asyncio.run(check())
    except AgentricError as e:
        click.echo(json.dumps(e.to_dict(), indent=2) if as_json else f"❌ {e}", err=not as_json)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        click.echo(format_health_text(report))
    sys.exit(0 if report.overall != HealthStatus.FAIL else 1)


if __name__ == "__main__":
    main()
