import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from scenedepth.api.v1.router import api_router
from scenedepth.api.v1.schemas.schemas import StageErrorResponse
from scenedepth.core.config import get_settings
from scenedepth.core.dependencies import get_container
from scenedepth.core.exceptions import (
    InputError,
    InvalidStatusTransitionError,
    PipelineAbortedError,
    PipelineIncompleteError,
    ProviderNotFoundError,
    ProviderUnavailableError,
    ServicePausedError,
    StageExecutionError,
)
from scenedepth.core.logging import LoggerRegistry
from scenedepth.services.upload_pipeline import recovery_options

logger = LoggerRegistry.get_api_logger("main")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": message})


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StageExecutionError)
    async def stage_error_handler(request: Request, exc: StageExecutionError):
        status_code = 400 if isinstance(exc.cause, InputError) else 422
        body = StageErrorResponse(stage=exc.stage, message=str(exc.cause), recovery=recovery_options(exc.stage))
        logger.warning("api.stage_error", path=request.url.path, stage=exc.stage, status_code=status_code)
        return JSONResponse(status_code=status_code, content=body.model_dump())

    @app.exception_handler(PipelineIncompleteError)
    async def incomplete_handler(request: Request, exc: PipelineIncompleteError):
        body = StageErrorResponse(stage=None, message=str(exc), recovery=recovery_options(None))
        return JSONResponse(status_code=422, content=body.model_dump())

    @app.exception_handler(InputError)
    async def input_error_handler(request: Request, exc: InputError):
        return _error(400, str(exc))

    @app.exception_handler(PipelineAbortedError)
    async def aborted_handler(request: Request, exc: PipelineAbortedError):
        return JSONResponse(status_code=409, content={"detail": str(exc), "stage": exc.stage})

    @app.exception_handler(ServicePausedError)
    async def paused_handler(request: Request, exc: ServicePausedError):
        return _error(503, str(exc))

    @app.exception_handler(ProviderNotFoundError)
    async def provider_not_found_handler(request: Request, exc: ProviderNotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(ProviderUnavailableError)
    async def provider_unavailable_handler(request: Request, exc: ProviderUnavailableError):
        return _error(409, str(exc))

    @app.exception_handler(InvalidStatusTransitionError)
    async def status_conflict_handler(request: Request, exc: InvalidStatusTransitionError):
        return _error(409, str(exc))


def create_app() -> FastAPI:
    app = FastAPI(
        title="Scenedepth API",
        description="Scene analysis and depth maps for uploaded images and videos.",
        version="1.0.0",
    )
    app.include_router(api_router, prefix="/api/v1")
    register_exception_handlers(app)

    def _container():
        return app.dependency_overrides.get(get_container, get_container)()

    @app.on_event("startup")
    async def startup() -> None:
        await _container().startup()
        logger.info("Scenedepth API initialized", version="1.0.0")

    @app.on_event("shutdown")
    async def shutdown() -> None:
        await _container().shutdown()

    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run("scenedepth.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
