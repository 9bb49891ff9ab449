from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
from pathlib import Path

from exam_manager.constants import (
    CORS_ALLOWED_ORIGINS,
    DEFAULT_LOG_DIRECTORY_DEV,
    DEFAULT_LOG_DIRECTORY_PROD,
)
from exam_manager.core.config import get_backup_config
from exam_manager.core.database import Base, engine
from exam_manager.modules.backups import models  # noqa: F401  (registers tables with Base)
from exam_manager.modules.backups.routes import router as backups_router
from exam_manager.services.scheduler_service import get_backup_scheduler

LOG_DIR = os.getenv("EXAM_MANAGER_LOG_DIR", DEFAULT_LOG_DIRECTORY_PROD)
LOG_FILE = os.getenv("EXAM_MANAGER_LOG_FILE", "backup.log")

# Create log directory if it doesn't exist (for development)
try:
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE
    log_handler = logging.FileHandler(log_path)
except PermissionError:
    # Fallback to local directory if no permissions for /var/log
    LOG_DIR = DEFAULT_LOG_DIRECTORY_DEV
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE
    log_handler = logging.FileHandler(log_path)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        log_handler,
        logging.StreamHandler()  # Also log to console
    ]
)

logger = logging.getLogger("exam_manager")

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Exam Manager Backup API",
    description="Database backups to Google Drive: manual, scheduled and restore",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(backups_router)


# Startup event
@app.on_event("startup")
async def startup_event():
    logger.info(f"Exam Manager Backup API started. Logging to: {log_path}")
    if get_backup_config().auto_backup_enabled:
        get_backup_scheduler().start()
    else:
        logger.info("Automatic backups disabled")


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down Exam Manager Backup API")
    get_backup_scheduler().shutdown()


# Health check (no auth required)
@app.get("/")
async def root():
    return {"message": "Exam Manager Backup API", "status": "active"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("exam_manager.main:app", host="0.0.0.0", port=8000, reload=False)
