from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.endpoints import coach
from app.api.v1.websocket import coach_ws
from app.core.config import get_settings
from app.core.logging_setup import setup_logging

settings = get_settings()
setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.project_name, version="1.0.0")
logger.info("meetcoach_app_created env=%s prefix=%s", settings.env, settings.api_v1_prefix)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=settings.cors_origin_list != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(coach.router, prefix=f"{settings.api_v1_prefix}/coach", tags=["coach"])
app.include_router(coach_ws.router, prefix=settings.api_v1_prefix, tags=["coach-ws"])


@app.get("/health")
def health() -> dict:
    return {"ok": True, "env": settings.env}

