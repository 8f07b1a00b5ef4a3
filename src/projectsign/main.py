import os
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from contextlib import asynccontextmanager

from projectsign.config import get_settings
from projectsign.create_tables import crear_tablas
from projectsign.errors import register_error_handlers
from projectsign.utils.logger import get_logger, setup_app_logging

from projectsign.modules.forms.job import start_token_cleanup_job
from projectsign.modules.auth.controllers.auth_controller import router as auth_router
from projectsign.modules.projects.controllers.project_controller import router as project_router
from projectsign.modules.forms.controllers.form_controller import router as form_router
from projectsign.modules.forms.controllers.signing_controller import router as signing_router

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup logic ---
    logger.info("application_starting", environment=settings.environment)
    crear_tablas()
    scheduler = None
    if settings.enable_maintenance_job:
        scheduler = start_token_cleanup_job()
        logger.info("token_cleanup_job_started", retention_days=settings.token_retention_days)
    yield
    # --- Shutdown logic ---
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    logger.info("application_stopped")


app = FastAPI(
    title="ProjectSign",
    description="API de proyectos, cotizaciones y firma remota de formularios",
    version="1.0.0",
    lifespan=lifespan
)

setup_app_logging(
    app,
    log_level=settings.log_level,
    use_json=settings.log_json,
    environment=settings.environment,
)
register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=[
        "Accept",
        "Accept-Language",
        "Content-Language",
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "X-Request-ID",
        "Origin",
    ],
    expose_headers=["X-Request-ID", "Content-Disposition"],
    max_age=86400,
)

# Routers
app.include_router(auth_router)
app.include_router(project_router)
app.include_router(form_router)
app.include_router(signing_router)

# Imágenes de firma servidas como estáticos
os.makedirs(settings.signature_storage_dir, exist_ok=True)
app.mount("/signatures", StaticFiles(directory=settings.signature_storage_dir), name="signatures")


@app.get("/health")
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run("projectsign.main:app", host="0.0.0.0", port=8000, reload=True)
