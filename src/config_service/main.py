"""Configuration Service - FastAPI Application.

Exposes the MCP server definitions under ``/config``. Every change runs the
full reconciliation pipeline before the response is sent.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging
from shared.models import (
    CacheKeys,
    HealthResponse,
    RemoveResponse,
    ServerDefinitionsBody,
    ServerDefinitionsResponse,
    ToolListResponse,
    UpdateResponse,
)
from config_service.cache import DerivedCache
from config_service.connections import http_connector
from config_service.errors import ConfigServiceError, InvalidInput
from config_service.reconcile import ReconciliationPipeline
from config_service.registry import ConnectionRegistry
from config_service.store import ConfigStore
from config_service.tools import ManifestLoader

logger = get_logger(__name__)

VERSION = "0.1.0"


def build_pipeline(settings: Settings) -> ReconciliationPipeline:
    """Build the pipeline and its collaborators from settings."""
    service = settings.config_service
    return ReconciliationPipeline(
        store=ConfigStore(service.config_path),
        cache=DerivedCache(ttl_seconds=service.cache_ttl_seconds),
        registry=ConnectionRegistry(http_connector(timeout=service.connect_timeout_seconds)),
        manifest_loader=ManifestLoader(service.manifest_path),
        tools_directory=service.tools_directory,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    setup_logging(settings.log_level, json_output=settings.environment == "production")

    logger.info("Starting configuration service")

    if getattr(app.state, "pipeline", None) is None:
        app.state.pipeline = build_pipeline(settings)
    pipeline: ReconciliationPipeline = app.state.pipeline

    try:
        result = await pipeline.refresh()
        await pipeline.cache_startup_config()
        logger.info(
            "Configuration service started",
            servers=result.connected,
            tool_count=len(result.tools)
        )
    except ConfigServiceError as e:
        logger.error("Initial reconciliation failed", error=e.message, kind=type(e).__name__)

    yield

    logger.info("Shutting down configuration service")
    await pipeline.registry.disconnect_all()


def get_pipeline(request: Request) -> ReconciliationPipeline:
    """Dependency returning the process-wide pipeline."""
    return request.app.state.pipeline


router = APIRouter(prefix="/config", tags=["Configuration"])


@router.get("", response_model=ServerDefinitionsResponse)
async def get_server_definitions(
    pipeline: ReconciliationPipeline = Depends(get_pipeline)
):
    """Get the current server definitions."""
    definitions = await pipeline.store.get()
    return ServerDefinitionsResponse(serverDefinitions=definitions)


@router.put("", response_model=UpdateResponse)
async def merge_server_definitions(
    body: ServerDefinitionsBody,
    pipeline: ReconciliationPipeline = Depends(get_pipeline)
):
    """
    Merge server definitions.

    Fields of an existing server that the body does not mention are kept.
    """
    result = await pipeline.merge(body.serverDefinitions)
    return UpdateResponse(serverDefinitions=result.server_definitions)


@router.post("", response_model=UpdateResponse)
async def replace_server_definitions(
    body: ServerDefinitionsBody,
    pipeline: ReconciliationPipeline = Depends(get_pipeline)
):
    """Replace all server definitions."""
    result = await pipeline.replace(body.serverDefinitions)
    return UpdateResponse(serverDefinitions=result.server_definitions)


@router.get("/tools", response_model=ToolListResponse)
async def list_tools(pipeline: ReconciliationPipeline = Depends(get_pipeline)):
    """
    List authenticated, available tools.

    Served from the cache; a miss is re-derived without caching.
    """
    tools = await pipeline.cache.get(CacheKeys.TOOLS)
    if tools is not None:
        return ToolListResponse(tools=tools, cached=True)
    return ToolListResponse(tools=await pipeline.derive_tools(), cached=False)


@router.get("/startup")
async def get_startup_config(pipeline: ReconciliationPipeline = Depends(get_pipeline)):
    """Get the startup configuration snapshot."""
    snapshot, _ = await pipeline.startup_config()
    return snapshot


@router.delete("/{server_name}", response_model=RemoveResponse)
async def remove_server_definition(
    server_name: str,
    pipeline: ReconciliationPipeline = Depends(get_pipeline)
):
    """Remove one server definition."""
    result = await pipeline.remove(server_name)
    return RemoveResponse(
        message=f'Server "{server_name}" removed successfully',
        serverDefinitions=result.server_definitions,
    )


async def config_error_handler(request: Request, exc: ConfigServiceError) -> JSONResponse:
    """Translate service errors into ``{"error": ...}`` responses."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Request failed",
        method=request.method,
        path=request.url.path,
        kind=type(exc).__name__,
        error=str(exc)
    )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Reject malformed request bodies before any file access."""
    logger.warning(
        "Invalid request body",
        method=request.method,
        path=request.url.path,
        errors=len(exc.errors())
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": InvalidInput.public_message}
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Answer unhandled errors with the generic service error."""
    logger.error(
        "Unhandled error",
        method=request.method,
        path=request.url.path,
        kind=type(exc).__name__,
        error=str(exc),
        exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": ConfigServiceError.public_message}
    )


def create_app(pipeline: Optional[ReconciliationPipeline] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        pipeline: Pipeline to serve; built from settings at startup if None
    """
    app = FastAPI(
        title="MCP Configuration Service",
        description="Manages MCP server definitions and the derived tool set",
        version=VERSION,
        lifespan=lifespan
    )
    app.state.pipeline = pipeline

    app.add_exception_handler(ConfigServiceError, config_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
    app.include_router(router)

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check(current: ReconciliationPipeline = Depends(get_pipeline)):
        """Health check endpoint."""
        registry = current.registry
        return HealthResponse(
            status="healthy",
            version=VERSION,
            servers=registry.connection_names,
            tool_count=len(registry.available_tools),
            server_tools=registry.get_tool_count()
        )

    return app


app = create_app()


def main():
    """Run the configuration service."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "config_service.main:app",
        host=settings.config_service.host,
        port=settings.config_service.port,
        reload=settings.environment == "development"
    )


if __name__ == "__main__":
    main()
