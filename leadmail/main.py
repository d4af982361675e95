from __future__ import annotations

import logging
from typing import Dict

from dotenv import load_dotenv

# Load .env before the settings modules are imported.
load_dotenv()

from fastapi import FastAPI

from leadmail.config import settings
from leadmail.db import init_db
from leadmail.ingestion.config import email_import_settings
from leadmail.routers import email_import as email_import_router
from leadmail.worker import start_email_import_worker, stop_email_import_worker

logger = logging.getLogger("leadmail.main")


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, debug=settings.debug)

    # Operator hooks for the email import worker
    app.include_router(email_import_router.router)

    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info("Starting %s...", settings.app_name)
        init_db()
        if email_import_settings.worker_enabled:
            start_email_import_worker()
        else:
            logger.info("Email import worker disabled (EMAIL_IMPORT_WORKER_ENABLED=false)")
        logger.info("%s started.", settings.app_name)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        stop_email_import_worker()

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok", "app": settings.app_name}

    return app


app = create_app()
