"""Directory (LDAP) configuration and sync API endpoints."""

import logging
from typing import Any, Literal, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from pydantic import ValidationError

from api.helpers import config_error_to_http, config_response_dict
from config import settings
from schemas import (
    ConnectionTestResponse,
    DirectoryConfigUpdateResponse,
    SyncLogEntryResponse,
    SyncLogFilter,
    SyncLogListResponse,
    SyncProgressResponse,
    SyncStartResponse,
    SyncStatisticsResponse,
    SyncStatusResponse,
)
from services.config_gate import ConfigGate
from services.exceptions import (
    DirectoryConfigError,
    DirectoryDisabledError,
    SyncAlreadyRunningError,
    SyncLogNotFoundError,
    SyncNotRunningError,
)
from services.sync_coordinator import SyncCoordinator
from utils.query_params import parse_sync_id, parse_timestamp

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/ldap", tags=["ldap"])

# Dependency injection for testing
_coordinator_override: Optional[SyncCoordinator] = None
_config_gate_override: Optional[ConfigGate] = None


def get_coordinator(request: Request) -> SyncCoordinator:
    """Get the app's SyncCoordinator, allowing for test overrides."""
    if _coordinator_override is not None:
        return _coordinator_override
    return request.app.state.sync_coordinator


def get_config_gate(request: Request) -> ConfigGate:
    """Get the app's ConfigGate, allowing for test overrides."""
    if _config_gate_override is not None:
        return _config_gate_override
    return request.app.state.config_gate


def set_service_overrides(
    coordinator: Optional[SyncCoordinator], config_gate: Optional[ConfigGate]
) -> None:
    """Set coordinator/config gate overrides for testing."""
    global _coordinator_override, _config_gate_override
    _coordinator_override = coordinator
    _config_gate_override = config_gate


# -- configuration ----------------------------------------------------------


@router.get("/config")
def get_config(gate: ConfigGate = Depends(get_config_gate)):
    """Return the current directory configuration with the password masked.

    Raises:
        HTTPException: 404 if the directory has not been configured.
    """
    try:
        return config_response_dict(gate.get_config())
    except DirectoryConfigError as e:
        raise config_error_to_http(e)


@router.post("/config", response_model=DirectoryConfigUpdateResponse)
def update_config(
    body: dict[str, Any] = Body(...),
    gate: ConfigGate = Depends(get_config_gate),
):
    """Replace the directory configuration.

    Sending back the masked password keeps the stored one. The new config
    applies to the next sync run; a run in progress keeps its snapshot.

    Raises:
        HTTPException: 422 with per-field errors if validation fails.
    """
    try:
        config = gate.update_config(body)
    except DirectoryConfigError as e:
        raise config_error_to_http(e)
    return DirectoryConfigUpdateResponse(
        message="Directory configuration updated",
        config=config_response_dict(config),
    )


@router.delete("/config")
def disable_config(gate: ConfigGate = Depends(get_config_gate)):
    """Disable directory sync. Idempotent."""
    gate.disable()
    return {"message": "Directory sync disabled"}


@router.post("/config/reload")
def reload_config(gate: ConfigGate = Depends(get_config_gate)):
    """Re-read the stored configuration.

    Raises:
        HTTPException: 404 if nothing is stored, 422 if it no longer validates.
    """
    try:
        config = gate.reload_config()
    except DirectoryConfigError as e:
        raise config_error_to_http(e)
    return {"message": "Directory configuration reloaded", "config": config_response_dict(config)}


@router.post("/test-connection", response_model=ConnectionTestResponse)
def test_connection(
    body: Optional[dict[str, Any]] = Body(default=None),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Test a bind and search against the directory.

    Tests the posted configuration when a body is sent, otherwise the
    stored one. A failed connection is reported as ``success: false``.
    """
    try:
        return coordinator.test_connection(body or None)
    except DirectoryConfigError as e:
        raise config_error_to_http(e)
    except Exception:
        logger.error("Unexpected error during directory connection test", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="An unexpected error occurred while testing the connection.",
        )


# -- sync -------------------------------------------------------------------


@router.post("/sync/users", status_code=202, response_model=SyncStartResponse)
def start_sync(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Start a user synchronization in the background.

    Raises:
        HTTPException:
            - 404 Not Found: Directory is not configured
            - 409 Conflict: A sync is already running, or sync is disabled
    """
    try:
        return coordinator.start_manual_sync()
    except SyncAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except DirectoryDisabledError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except DirectoryConfigError as e:
        raise config_error_to_http(e)
    except Exception:
        logger.error("Unexpected error starting directory sync", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="An unexpected error occurred while starting the sync.",
        )


@router.delete("/sync/cancel")
def cancel_sync(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Request cancellation of the running sync.

    Raises:
        HTTPException: 404 if no sync is running.
    """
    try:
        sync_id = coordinator.cancel_sync()
    except SyncNotRunningError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"message": "Synchronization cancellation requested", "sync_id": sync_id}


@router.get("/sync/status", response_model=SyncStatusResponse)
def get_sync_status(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Status of the running sync, or of the last finished one."""
    return coordinator.get_sync_status()


@router.get("/sync/progress", response_model=SyncProgressResponse)
def get_sync_progress(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """Live progress of the running sync."""
    return coordinator.get_sync_progress()


@router.get("/sync/logs", response_model=SyncLogListResponse)
def get_sync_logs(
    limit: int = Query(default=settings.SYNC_LOG_DEFAULT_LIMIT, ge=1),
    level: Optional[Literal["info", "warning", "error"]] = None,
    sync_id: Optional[str] = None,
    username: Optional[str] = None,
    from_time: Optional[str] = Query(default=None, alias="from"),
    to_time: Optional[str] = Query(default=None, alias="to"),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Query sync log entries, newest first.

    ``limit`` is capped server-side; ``total`` counts every match.

    Raises:
        HTTPException: 400 for malformed ids, timestamps or ranges.
    """
    try:
        log_filter = SyncLogFilter(
            limit=limit,
            level=level,
            sync_id=parse_sync_id(sync_id),
            username=username or None,
            from_time=parse_timestamp(from_time, "from"),
            to_time=parse_timestamp(to_time, "to"),
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors()[0]["msg"])
    return coordinator.get_sync_logs(log_filter)


@router.get("/sync/logs/{log_id}", response_model=SyncLogEntryResponse)
def get_sync_log_details(
    log_id: int,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Return one sync log entry including its stack trace."""
    try:
        return coordinator.get_sync_log_details(log_id)
    except SyncLogNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/statistics", response_model=SyncStatisticsResponse)
def get_statistics(
    recent: int = Query(default=10, ge=0, le=100),
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Sync totals across all runs plus the most recent runs."""
    return coordinator.get_statistics(recent=recent)
