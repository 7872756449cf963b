"""
Automation Backend Server
Serves the automation API (sequence enrollment, workflow runs, editor catalogs)
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment variables before settings and the engine are built
load_dotenv()

from database import init_db
from automation_service.bootstrap import AutomationRuntime
from automation_service.routes import automation_router
from automation_service.runtime.background import drain_background_tasks

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if os.getenv("AUTOMATION_INIT_DB", "").lower() in ("1", "true", "yes"):
        init_db()
        logger.info("Database tables created")

    runtime = AutomationRuntime()
    app.state.automation_runtime = runtime
    logger.info("Workflow runtime started")

    yield

    # Let running workflows, status publishes and usage logs finish
    await drain_background_tasks()
    await runtime.close()
    logger.info("Workflow runtime stopped")


app = FastAPI(title="Automation Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(automation_router)


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8010")))
