"""
FastAPI application exposing sync passes and conflict resolution.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from ..core.config import load_settings, setup_logging
from ..engine.sync import SyncEngine
from ..exceptions import (
    ConfigurationError,
    ConflictAlreadyResolvedError,
    ConflictNotFoundError,
    ConnectorError,
    CrmBridgeError,
    PassAlreadyRunningError,
)
from ..models.conflict import ConflictDecision, ConflictRecord
from ..models.cursor import SyncCursor
from ..models.mapping import ObjectMapping, SyncDirection
from ..version import __version__

logger = logging.getLogger(__name__)

# Global engine (initialized in lifespan)
sync_engine: Optional[SyncEngine] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global sync_engine

    setup_logging(os.getenv("LOG_LEVEL", "INFO"))
    try:
        sync_engine = SyncEngine.from_settings(load_settings())
        logger.info("Sync engine initialized successfully")
    except CrmBridgeError as e:
        logger.error(f"Failed to initialize sync engine: {e}")
        # Let the app start; /health reports the engine as unavailable
        sync_engine = None

    yield

    logger.info("Application shutdown")


app = FastAPI(
    title="CRM Bridge API",
    description="Incremental sync between Attio and Salesforce",
    version=__version__,
    lifespan=lifespan
)

# Get allowed origins from environment variable
allowed_origins_str = os.getenv("ALLOWED_ORIGINS", "")
allowed_origins = [origin.strip() for origin in allowed_origins_str.split(",") if origin.strip()]

if not allowed_origins:
    # Default to allowing all for local dev if not set
    allowed_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependency injection
def get_sync_engine() -> SyncEngine:
    if sync_engine is None:
        raise HTTPException(status_code=500, detail="Sync engine not initialized")
    return sync_engine


class ResolveConflictRequest(BaseModel):
    """Operator decision for a pending conflict."""
    decision: ConflictDecision
    resolved_by: str = Field("operator", description="Who is resolving the conflict")
    notes: Optional[str] = None


# Health check endpoint
@app.get("/health")
async def health_check():
    """Check the health of the application and its engine."""
    return {
        "status": "healthy",
        "version": __version__,
        "services": {
            "sync_engine": sync_engine is not None,
        }
    }


@app.get("/api/v1/mappings", response_model=Dict[str, ObjectMapping])
def list_mappings(engine: SyncEngine = Depends(get_sync_engine)):
    """List the configured object mappings."""
    return engine.mappings


# Sync endpoints. Plain def so passes run in the threadpool.

@app.post("/api/v1/sync")
def run_all(
    direction: Optional[SyncDirection] = None,
    engine: SyncEngine = Depends(get_sync_engine)
) -> List[Dict[str, Any]]:
    """Run a pass for every enabled mapping."""
    try:
        return [r.get_summary() for r in engine.run_all(direction=direction)]
    except CrmBridgeError as e:
        logger.error(f"Sync of all mappings failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/v1/sync/{source_object}/{target_object}")
def run_pass(
    source_object: str,
    target_object: str,
    direction: Optional[SyncDirection] = None,
    engine: SyncEngine = Depends(get_sync_engine)
) -> Dict[str, Any]:
    """Run one pass for an object pair."""
    try:
        result = engine.run_pass(source_object, target_object, direction=direction)
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PassAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CrmBridgeError as e:
        logger.error(f"Pass for {source_object} <-> {target_object} failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return result.get_summary()


@app.get("/api/v1/sync/{source_object}/{target_object}/cursor", response_model=SyncCursor)
def get_cursor(source_object: str, target_object: str, engine: SyncEngine = Depends(get_sync_engine)):
    """Get the stored cursor for an object pair."""
    try:
        cursor = engine.get_cursor(source_object, target_object)
    except CrmBridgeError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if cursor is None:
        raise HTTPException(status_code=404, detail="No cursor stored")
    return cursor


@app.delete("/api/v1/sync/{source_object}/{target_object}/cursor")
def reset_cursor(source_object: str, target_object: str, engine: SyncEngine = Depends(get_sync_engine)):
    """Delete the stored cursor for an object pair."""
    try:
        deleted = engine.reset_cursor(source_object, target_object)
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CrmBridgeError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"deleted": deleted}


# Conflict endpoints

@app.get("/api/v1/conflicts", response_model=List[ConflictRecord])
def list_conflicts(limit: int = 100, engine: SyncEngine = Depends(get_sync_engine)):
    """List pending conflicts."""
    try:
        return engine.list_pending_conflicts(limit=limit)
    except CrmBridgeError as e:
        logger.error(f"Failed to list conflicts: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/conflicts/{conflict_id}", response_model=ConflictRecord)
def get_conflict(conflict_id: str, engine: SyncEngine = Depends(get_sync_engine)):
    """Get a conflict by id."""
    try:
        return engine.get_conflict(conflict_id)
    except ConflictNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CrmBridgeError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/v1/conflicts/{conflict_id}/resolve", response_model=ConflictRecord)
def resolve_conflict(
    conflict_id: str,
    request: ResolveConflictRequest,
    engine: SyncEngine = Depends(get_sync_engine)
):
    """Apply an operator decision to a pending conflict."""
    try:
        return engine.resolve_conflict(
            conflict_id, request.decision, resolved_by=request.resolved_by, notes=request.notes
        )
    except ConflictNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (ConflictAlreadyResolvedError, PassAlreadyRunningError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ConnectorError as e:
        logger.error(f"Writing resolution for conflict {conflict_id} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except CrmBridgeError as e:
        logger.error(f"Failed to resolve conflict {conflict_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
