import logging
import threading
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from rackctl.config import load_options
from rackctl.errors import ConfigurationError, MalformedAddressError, RackctlError
from rackctl.modules.models import ClusterHealth, LifecycleResult
from rackctl.modules.orchestrator import ClusterOrchestrator
from rackctl.utils import redact_sensitive_data

logger = logging.getLogger("rackctl.api.cluster")

router = APIRouter(prefix="/cluster")

bring_up_lock = threading.Lock()


class BringUpRequest(BaseModel):
    parallel: Optional[int] = None


def get_orchestrator() -> ClusterOrchestrator:
    try:
        return ClusterOrchestrator(load_options())
    except ConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/topology")
def get_topology(orchestrator: ClusterOrchestrator = Depends(get_orchestrator)):
    try:
        return orchestrator.topology().to_dict()
    except MalformedAddressError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/up")
def bring_up(req: BringUpRequest, orchestrator: ClusterOrchestrator = Depends(get_orchestrator)):
    # The ssh-agent environment is process-wide, so only one bring-up may run at a time
    if not bring_up_lock.acquire(blocking=False):
        raise HTTPException(status_code=409, detail="A cluster bring-up is already running")
    try:
        if req.parallel is not None:
            orchestrator = orchestrator.with_options(node_parallelism=max(1, req.parallel))
        report = orchestrator.bring_up()
    except RackctlError as e:
        logger.error(f"❌ Bring-up failed: {e}")
        return {"status": "error", "message": str(e)}
    finally:
        bring_up_lock.release()
    return {"status": "success", **redact_sensitive_data(report.to_dict())}


@router.post("/validate")
def validate(orchestrator: ClusterOrchestrator = Depends(get_orchestrator)):
    try:
        health = orchestrator.validate()
    except RackctlError as e:
        return {"status": "error", "message": str(e)}
    return {
        "status": "success" if health == ClusterHealth.HEALTHY else "error",
        "health": health.value,
        "diagnostics": {
            host: {r.daemon: r.status for r in results}
            for host, results in orchestrator.diagnostics.items()
        },
    }


@router.post("/down", status_code=501)
def tear_down(orchestrator: ClusterOrchestrator = Depends(get_orchestrator)):
    result = orchestrator.tear_down()
    if result == LifecycleResult.NOT_SUPPORTED:
        raise HTTPException(status_code=501, detail="Cluster teardown is not supported")
    return {"status": result.value}
