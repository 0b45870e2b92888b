from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol

import uvicorn
from fastapi import APIRouter, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.core.errors import StorageError
from src.models.opportunity import ArbitrageOpportunity, OpportunityStats


SERVICE_NAME: str = "polygon-dex-spread-monitor"
STATUS_TEXT: str = "Monitoring Polygon DEXs"
DEFAULT_LIMIT: int = 50
MAX_LIMIT: int = 500

logger: logging.Logger = logging.getLogger(__name__)


class OpportunityReader(Protocol):
    def recent(self, limit: int = DEFAULT_LIMIT) -> List[ArbitrageOpportunity]: ...

    def aggregate_stats(self) -> OpportunityStats: ...


StatusProvider = Callable[[], Dict[str, Any]]


class ApiResponse(BaseModel):
    """Envelope shared by every endpoint.

    Attributes:
        success: Whether the request was served.
        data: Endpoint payload on success.
        error: Failure description when success is False.
    """

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None


def _ok(data: Any) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_200_OK, content=ApiResponse(success=True, data=data).model_dump())


def _storage_failure(message: str, exc: StorageError) -> JSONResponse:
    logger.error("%s: %s", message, exc)
    body = ApiResponse(success=False, error=f"{message}: {exc}")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body.model_dump())


def _opportunity_payload(opp: ArbitrageOpportunity) -> Dict[str, Any]:
    payload = opp.as_dict()
    payload["created_at"] = payload["timestamp"]
    return payload


router: APIRouter = APIRouter(prefix="/api", tags=["opportunities"])


@router.get("/opportunities", response_model=ApiResponse, summary="Recently detected opportunities")
def get_opportunities(
    request: Request,
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
) -> JSONResponse:
    store: OpportunityReader = request.app.state.store
    try:
        opportunities = store.recent(limit)
    except StorageError as exc:
        return _storage_failure("Database query failed", exc)

    logger.info("API: returning %d opportunities", len(opportunities))
    return _ok([_opportunity_payload(o) for o in opportunities])


@router.get("/stats", response_model=ApiResponse, summary="Aggregate opportunity statistics")
def get_stats(request: Request) -> JSONResponse:
    store: OpportunityReader = request.app.state.store
    try:
        stats = store.aggregate_stats()
    except StorageError as exc:
        return _storage_failure("Stats query failed", exc)

    return _ok(
        {
            "total_opportunities": stats.count,
            "average_profit": float(stats.average_profit),
            "best_profit": float(stats.max_profit),
            "runtime": "Active" if _status(request).get("running") else "Stopped",
        }
    )


@router.get("/status", response_model=ApiResponse, summary="Monitor loop status")
def get_status(request: Request) -> JSONResponse:
    snapshot = _status(request)
    return _ok(
        {
            "running": bool(snapshot.get("running", False)),
            "last_check": snapshot.get("last_check"),
            "status": STATUS_TEXT,
            "state": snapshot.get("state"),
            "iterations": snapshot.get("iterations", 0),
            "last_error": snapshot.get("last_error"),
            "opportunities_found": snapshot.get("opportunities_found", 0),
            "server_time": datetime.now(timezone.utc).isoformat(),
        }
    )


def _status(request: Request) -> Dict[str, Any]:
    provider: Optional[StatusProvider] = request.app.state.status_provider
    return provider() if provider is not None else {}


def create_app(store: OpportunityReader, status_provider: Optional[StatusProvider] = None) -> FastAPI:
    """Build the read-only API around an opportunity store.

    Args:
        store: Source of recorded opportunities and aggregate stats.
        status_provider: Callable returning the monitor loop's status snapshot.

    Returns:
        A configured FastAPI application. No route writes to the store.
    """
    application = FastAPI(title=SERVICE_NAME)
    application.state.store = store
    application.state.status_provider = status_provider
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Authorization", "Accept", "Content-Type"],
        max_age=3600,
    )
    application.include_router(router)
    return application


class ApiServerThread:
    """Runs uvicorn on its own thread and event loop next to the monitor."""

    def __init__(self, app: FastAPI, host: str, port: int, log_level: str = "info") -> None:
        config = uvicorn.Config(app, host=host, port=port, log_level=log_level.lower())
        self.server = uvicorn.Server(config)
        self._thread = threading.Thread(target=self._serve, name="api-server", daemon=True)

    def _serve(self) -> None:
        try:
            self.server.run()
        except SystemExit as e:
            # uvicorn exits the process when it cannot bind; keep that to this thread.
            logger.error("API server exited during startup (code %s)", e.code)

    def start(self, timeout: float = 5.0) -> bool:
        """Start serving and wait until uvicorn has bound its socket.

        Returns False when the server thread exits or times out before startup
        completes, e.g. because the port is already in use.
        """
        self._thread.start()
        deadline = time.monotonic() + timeout
        while not self.server.started:
            if not self._thread.is_alive() or time.monotonic() >= deadline:
                return False
            time.sleep(0.05)
        return True

    def stop(self, timeout: float = 5.0) -> None:
        self.server.should_exit = True
        self._thread.join(timeout=timeout)
