"""FastAPI router for the observability endpoints.

The router is a thin shell: parsing, provider selection and translation live
in the explorer controller. Every response uses the ``{success, error?, data}``
envelope.
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Callable, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from obs_query_server.errors import ExplorerError, InvalidArgumentError
from obs_query_server.explorer import ExplorerController
from obs_query_server.timeutil import parse_rfc3339
from obs_query_server.wire import (
    ExplorerQueryData,
    ExplorerQueryRequest,
    LogsData,
    ProvidersData,
    TraceDetailData,
    envelope,
)

logger = structlog.get_logger(__name__)

QUERY_PATH = "/observability/query"

ProviderParam = Annotated[str, Query(description="Name of the provider to use")]


def _timestamp(value: Any):
    return parse_rfc3339(value) if isinstance(value, str) else None


def _unix_seconds(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise InvalidArgumentError(f"invalid query: timestamp out of range: {value}") from e


def create_observability_router(
    *,
    get_controller: Callable[..., Any],
    require_auth: Optional[Callable[..., Any]] = None,
) -> APIRouter:
    """Create the router for the observability endpoints.

    Args:
        get_controller: Dependency returning the ExplorerController
        require_auth: Dependency guarding every route, typically a bearer-token check

    Returns:
        Configured APIRouter ready to be mounted on a FastAPI app.
    """
    dependencies = [Depends(require_auth)] if require_auth is not None else []
    router = APIRouter(
        prefix="/observability",
        tags=["observability"],
        dependencies=dependencies,
    )

    @router.post("/query", summary="Run an explorer query")
    async def explorer_query(
        payload: ExplorerQueryRequest,
        controller: Annotated[ExplorerController, Depends(get_controller)],
    ) -> JSONResponse:
        query = payload.query or ""
        try:
            result = await controller.execute(
                query,
                time_from=_timestamp(payload.time_range_from),
                time_to=_timestamp(payload.time_range_to),
                provider=payload.provider or "",
            )
        except ExplorerError as e:
            logger.warning(
                "Explorer query failed",
                status_code=e.status_code,
                provider=payload.provider,
                error=str(e)
            )
            shell = ExplorerQueryData(data_source=e.data_source or "")
            return JSONResponse(status_code=e.status_code, content=envelope(False, shell, str(e)))

        data = ExplorerQueryData.from_result(result, query)
        return JSONResponse(content=envelope(True, data))

    @router.get("/providers", summary="List registered providers")
    async def list_providers(
        controller: Annotated[ExplorerController, Depends(get_controller)],
    ) -> JSONResponse:
        data = ProvidersData(
            logs_providers=sorted(controller.logs_providers),
            traces_providers=sorted(controller.traces_providers),
            metrics_providers=sorted(controller.metrics_providers),
            alerts_providers=sorted(controller.alerts_providers),
        )
        return JSONResponse(content=envelope(True, data))

    @router.get("/health", summary="Check provider health")
    async def provider_health(
        controller: Annotated[ExplorerController, Depends(get_controller)],
    ) -> JSONResponse:
        status = await controller.check_health()
        healthy = all(outcome == "ok" for outcome in status.values())
        return JSONResponse(status_code=200 if healthy else 503, content=envelope(healthy, status))

    @router.get("/logs", summary="Query a logs provider")
    async def query_logs(
        controller: Annotated[ExplorerController, Depends(get_controller)],
        provider: ProviderParam = "",
        service: Annotated[Optional[str], Query(description="Service filter")] = None,
        level: Annotated[Optional[str], Query(description="Level filter")] = None,
        query: Annotated[Optional[str], Query(description="Native query; wins over the filters")] = None,
        start: Annotated[Optional[int], Query(description="Window start in Unix seconds")] = None,
        end: Annotated[Optional[int], Query(description="Window end in Unix seconds")] = None,
        limit: Annotated[Optional[int], Query(description="Maximum number of entries")] = None,
    ) -> JSONResponse:
        entries = await controller.query_logs(
            provider,
            service=service,
            level=level,
            query=query,
            time_from=_unix_seconds(start),
            time_to=_unix_seconds(end),
            limit=limit,
        )
        effective_limit = limit or controller.default_limit
        data = LogsData(
            logs=entries,
            total=len(entries),
            has_more=len(entries) >= effective_limit,
            provider=provider,
        )
        return JSONResponse(content=envelope(True, data))

    @router.get("/logs/labels", summary="List log label names")
    async def log_labels(
        controller: Annotated[ExplorerController, Depends(get_controller)],
        provider: ProviderParam = "",
    ) -> JSONResponse:
        return JSONResponse(content=envelope(True, await controller.get_log_labels(provider)))

    @router.get("/logs/levels", summary="List log levels")
    async def log_levels(
        controller: Annotated[ExplorerController, Depends(get_controller)],
        provider: ProviderParam = "",
    ) -> JSONResponse:
        return JSONResponse(content=envelope(True, await controller.get_log_levels(provider)))

    @router.get("/traces/services", summary="List traced services")
    async def trace_services(
        controller: Annotated[ExplorerController, Depends(get_controller)],
        provider: ProviderParam = "",
    ) -> JSONResponse:
        return JSONResponse(content=envelope(True, await controller.get_trace_services(provider)))

    @router.get("/traces/{trace_id}", summary="Get a full trace")
    async def trace_detail(
        trace_id: str,
        controller: Annotated[ExplorerController, Depends(get_controller)],
        provider: ProviderParam = "",
    ) -> JSONResponse:
        trace = await controller.get_trace_detail(provider, trace_id)
        return JSONResponse(content=envelope(True, TraceDetailData.from_trace(trace)))

    @router.get("/metrics/names", summary="List metric names")
    async def metric_names(
        controller: Annotated[ExplorerController, Depends(get_controller)],
        provider: ProviderParam = "",
    ) -> JSONResponse:
        return JSONResponse(content=envelope(True, await controller.get_metric_names(provider)))

    @router.get("/alerts", summary="List alerts")
    async def alerts(
        controller: Annotated[ExplorerController, Depends(get_controller)],
        provider: ProviderParam = "",
        status: Annotated[Optional[str], Query(description="active, silenced or inhibited")] = None,
    ) -> JSONResponse:
        items = await controller.get_alerts(provider, status)
        return JSONResponse(content=envelope(True, [a.model_dump(mode="json") for a in items]))

    @router.get("/alerts/silences", summary="List silences")
    async def silences(
        controller: Annotated[ExplorerController, Depends(get_controller)],
        provider: ProviderParam = "",
    ) -> JSONResponse:
        items = await controller.get_silences(provider)
        return JSONResponse(content=envelope(True, [s.model_dump(mode="json") for s in items]))

    return router


def register_exception_handlers(app: FastAPI) -> None:
    """Render errors raised outside the explorer query route as envelopes."""

    @app.exception_handler(ExplorerError)
    async def explorer_error_handler(request: Request, exc: ExplorerError) -> JSONResponse:
        logger.warning(
            "Request failed",
            path=request.url.path,
            status_code=exc.status_code,
            error=str(exc)
        )
        return JSONResponse(status_code=exc.status_code, content=envelope(False, None, str(exc)))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        detail = errors[0].get("msg", "invalid request") if errors else "invalid request"
        if request.url.path == QUERY_PATH:
            return JSONResponse(
                status_code=400,
                content=envelope(False, ExplorerQueryData(), f"invalid request body: {detail}"),
            )
        return JSONResponse(status_code=400, content=envelope(False, None, f"invalid request: {detail}"))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=envelope(False, None, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )
