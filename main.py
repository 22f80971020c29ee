from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware

from api.routes_session import router as session_router
from api.routes_shelf import router as shelf_router
from api.state import RuntimeState
from observability.logging import setup_json_logging
from observability.metrics import metrics_middleware, metrics_response, setup_metrics

logger = logging.getLogger(__name__)


def _prune_once(runtime: RuntimeState) -> dict[str, int]:
    retention = runtime.config.retention
    out = runtime.store.prune_sessions(max_age_days=retention.max_age_days)
    out.update(runtime.store.prune_traces(max_file_bytes=retention.trace_max_bytes, max_lines=retention.trace_max_lines))
    out["forgotten"] = runtime.forget_pruned_sessions()
    return out


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: start/stop the retention task."""
    task: asyncio.Task | None = None
    runtime: RuntimeState = app.state.runtime
    retention = runtime.config.retention
    try:
        if retention.enabled:
            _prune_once(runtime)

            async def _loop():
                while True:
                    await asyncio.sleep(max(60.0, float(retention.cleanup_interval_minutes) * 60.0))
                    try:
                        _prune_once(runtime)
                    except OSError as exc:
                        logger.warning("retention pass failed: %s", exc)

            task = asyncio.create_task(_loop())
        yield
    finally:
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass


def create_app() -> FastAPI:
    runtime = RuntimeState.build()
    obs_cfg = runtime.config.observability
    setup_json_logging(level=obs_cfg.log_level, json_logs=obs_cfg.json_logs)

    app = FastAPI(title="Shelf Configurator", version="1.0.0", lifespan=lifespan)
    app.add_middleware(GZipMiddleware, minimum_size=1000, compresslevel=5)
    app.state.runtime = runtime
    metrics_enabled = bool(obs_cfg.metrics_enabled)
    if metrics_enabled:
        setup_metrics()

    @app.middleware("http")
    async def _metrics(request: Request, call_next):
        if not metrics_enabled:
            return await call_next(request)
        return await metrics_middleware(request, call_next)

    app.include_router(session_router)
    app.include_router(shelf_router)

    @app.get("/metrics")
    def metrics():
        if not metrics_enabled:
            return {"status": "disabled"}
        return metrics_response()

    @app.get("/health")
    def health() -> dict[str, object]:
        return {
            "status": "ok",
            "version": app.version,
            "catalog": {"rods": len(runtime.catalog.rods), "plates": len(runtime.catalog.plates)},
            "sessions": len(runtime.sessions),
        }

    logger.info("shelf configurator ready (config=%s)", runtime.config_source)
    return app


app = create_app()
