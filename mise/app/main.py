# mise/app/main.py
from __future__ import annotations

import logging
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mise.app.config import get_settings
from mise.app.routers.recipes import router as recipes_router

# Plain stdout logging (dev and containers)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Mise Recipe Extraction API", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.FRONTEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(recipes_router)

    @app.get("/health")
    def health():
        return {"ok": True}

    return app


app = create_app()
