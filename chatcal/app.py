from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import LLM_DEBUG, cors_origins
from .routes import router
from .services import Services, build_services


def create_app(services: Optional[Services] = None) -> FastAPI:
  logging.basicConfig(level=logging.DEBUG if LLM_DEBUG else logging.INFO)
  app = FastAPI(title="chatcal")
  if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
  app.state.services = services or build_services()
  app.include_router(router)
  return app
