"""
vSAN Lab Service Entrypoint

FastAPI application exposing the lab control plane.
Includes all API routers, the workflow scheduler thread and startup
initialization.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shared.logging_config import setup_logging
from vsanlab.api import deps, failures, health, hosts, lab, maintenance, vms
from vsanlab.config import LOG_LEVEL
from vsanlab.logic import ControlPlane
from vsanlab.results import UnknownEntityError
from vsanlab.scheduler import ThreadedScheduler

logger = logging.getLogger(__name__)

app = FastAPI(title="vSAN Master Lab Control Plane")

# Include all API routers
app.include_router(lab.router)
app.include_router(hosts.router)
app.include_router(vms.router)
app.include_router(maintenance.router)
app.include_router(failures.router)
app.include_router(health.router)

# Global control plane instance
control_plane = None


@app.exception_handler(UnknownEntityError)
def unknown_entity_handler(request: Request, exc: UnknownEntityError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.on_event("startup")
def startup_init():
    """Create the control plane and start the workflow scheduler"""
    global control_plane

    setup_logging("vsanlab", level=getattr(logging, LOG_LEVEL, logging.INFO))

    scheduler = ThreadedScheduler()
    control_plane = ControlPlane(scheduler=scheduler)
    scheduler.start()

    # Inject control plane into API routers
    deps.set_control_plane(control_plane)

    logger.info("vSAN lab service startup complete")


@app.on_event("shutdown")
def shutdown_cleanup():
    """Stop the scheduler on shutdown"""
    global control_plane

    if control_plane:
        logger.info("Stopping workflow scheduler...")
        control_plane.scheduler.stop()
        control_plane.close()
        deps.set_control_plane(None)

    logger.info("vSAN lab service shutdown complete")


@app.get("/")
def root():
    return {
        "service": "vsanlab",
        "message": "vSAN Master Lab control-plane service running",
    }
