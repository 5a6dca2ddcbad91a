"""FastAPI application entry point."""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..exceptions import ArtifactNotFoundError, ConfigError, InvalidStateError
from ..orchestrator import PipelineOrchestrator
from .routes import artifacts, pipeline


def create_app(orchestrator: Optional[PipelineOrchestrator] = None) -> FastAPI:
    """
    Create the API application.

    Args:
        orchestrator: Pipeline to serve; created from configuration on first
            request when omitted
    """
    app = FastAPI(
        title="B2B Configuration Migrator API",
        description="API for reviewing and migrating B2B configuration artifacts",
        version=__version__,
    )
    app.state.orchestrator = orchestrator

    # CORS middleware for the admin UI
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(artifacts.router, prefix="/api/artifacts", tags=["artifacts"])
    app.include_router(pipeline.router, prefix="/api", tags=["pipeline"])

    @app.exception_handler(ArtifactNotFoundError)
    async def artifact_not_found(request: Request, exc: ArtifactNotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidStateError)
    async def invalid_state(request: Request, exc: InvalidStateError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(ConfigError)
    async def config_error(request: Request, exc: ConfigError):
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()
