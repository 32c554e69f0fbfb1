"""FastAPI main application."""
from contextlib import asynccontextmanager
from typing import Optional
import logging
import os
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from grabarr.api.routes import router
from grabarr.config import candidate_config_paths, init_config
from grabarr.core.errors import CollisionError, ConfigurationError, RecordNotFoundError
from grabarr.db.database import init_db
from grabarr.services.container import Services, build_services

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def find_config_path() -> str:
    """Premier fichier de configuration existant."""
    candidates = candidate_config_paths()
    existing = next((path for path in candidates if os.path.exists(path)), None)
    if existing:
        return existing

    tried = "\n".join(f"  - {path}" for path in candidates)
    message = (
        "No configuration file found. Looked in:\n"
        f"{tried}\n"
        "Copy config.example.yaml to config/config.yaml, mount it at /config, "
        "or point CONFIG_PATH at it."
    )
    logger.error(message)
    raise FileNotFoundError(message)


def bootstrap() -> Services:
    """Charge la config, initialise la base et les services."""
    config_path = find_config_path()
    config = init_config(config_path)
    logging.getLogger().setLevel(config.app.log_level.upper())
    logger.info(f"Configuration loaded from {config_path}")

    data_dir = os.getenv("DATA_DIR", config.app.data_dir)
    try:
        init_db(data_dir)
    except OSError as e:
        logger.error(f"Database unavailable in {data_dir}: {e}")
        logger.error("Mount a writable data volume (-v ./data:/data) or set DATA_DIR")
        raise
    return build_services()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "services", None) is None:
        app.state.services = bootstrap()
    services: Services = app.state.services
    services.scheduler.start()
    try:
        yield
    finally:
        services.scheduler.shutdown()


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": exc.__class__.__name__})


def create_app(services: Optional[Services] = None) -> FastAPI:
    app = FastAPI(title="Grabarr", version="1.0.0", lifespan=lifespan)
    if services is not None:
        app.state.services = services

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        return _error(400, exc)

    @app.exception_handler(RecordNotFoundError)
    async def not_found_handler(request: Request, exc: RecordNotFoundError):
        return _error(404, exc)

    @app.exception_handler(CollisionError)
    async def collision_handler(request: Request, exc: CollisionError):
        return _error(409, exc)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions with detailed logging."""
        logger.exception(f"Unhandled exception in {request.method} {request.url}")
        return JSONResponse(
            status_code=500,
            content={
                "error": str(exc),
                "type": exc.__class__.__name__,
                "message": f"Internal server error: {str(exc)}",
                "path": str(request.url),
                "method": request.method,
                "traceback": traceback.format_exc(),
            }
        )

    app.include_router(router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {"message": "Grabarr API"}

    return app


app = create_app()
