import logging

from fastapi import FastAPI

from smsgate.api.routes import api_router
from smsgate.core.config import settings
from smsgate.core.scheduler import shutdown_scheduler, start_scheduler

app = FastAPI(title=settings.app_name, version="0.1.0")

app.include_router(api_router)


@app.on_event("startup")
def _startup() -> None:
    logging.basicConfig(level=settings.log_level.upper())
    start_scheduler()


@app.on_event("shutdown")
def _shutdown() -> None:
    shutdown_scheduler()


@app.get("/", tags=["health"])
async def root() -> dict[str, str]:
    return {"message": f"{settings.app_name} ready"}
