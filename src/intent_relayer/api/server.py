import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from intent_relayer.api.routes import router
from intent_relayer.core.config import RelayerConfig
from intent_relayer.relayer.scheduler import IntentRelayer

logger = logging.getLogger("intent_relayer.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "relayer", None) is not None:
        # relayer supplied by the caller, who owns its lifecycle
        yield
        return

    relayer = IntentRelayer.from_config(RelayerConfig.from_env())
    relayer.initialize()
    relayer.start()
    app.state.relayer = relayer
    logger.info("Relayer started with HTTP intake")

    yield
    relayer.stop()


def create_app(relayer: IntentRelayer | None = None) -> FastAPI:
    """
    Build the HTTP intake and status API.

    Args:
        relayer: an existing relayer; if omitted one is built from the
            environment on startup and stopped on shutdown
    """
    app = FastAPI(
        title="Intent Relayer API",
        description="Signed-intent intake and status for the IntentSwap relayer",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.relayer = relayer
    app.include_router(router)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content={"detail": str(exc)},
        )

    @app.get("/health")
    async def health_check():
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app
