import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import Settings, settings
from ..exceptions import BudgetExceededError, RoutingTimeout, TierExecutionFailed
from ..service import FiscalAdvisor, build_advisor
from .middleware import RequestLoggingMiddleware
from .routers import advice, costs, health

logger = logging.getLogger(__name__)

TIMEOUT_ADVICE = (
    "La demande a pris trop de temps. Reformulez une question plus courte "
    "ou réessayez dans quelques instants."
)
FAILURE_ADVICE = (
    "Le service de conseil est momentanément indisponible. Consultez urssaf.fr "
    "ou impots.gouv.fr pour les informations officielles."
)


def create_app(advisor: Optional[FiscalAdvisor] = None, config: Optional[Settings] = None) -> FastAPI:
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting fiscal AI routing API...")
        owned = app.state.advisor is None
        if owned:
            app.state.advisor = await build_advisor(config)
        logger.info("All services started successfully")

        yield

        logger.info("Shutting down services...")
        if owned:
            await app.state.advisor.shutdown()
        else:
            await app.state.advisor.memory.drain()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Fiscal AI Routing API",
        description="Cost-aware routing and escalation of fiscal advisory questions",
        version=__version__,
        docs_url="/docs" if config.debug else None,
        redoc_url="/redoc" if config.debug else None,
        lifespan=lifespan
    )
    app.state.advisor = advisor

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if config.debug else ["http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if config.request_logging_enabled:
        app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(advice.router, prefix="/ai", tags=["advice"])
    app.include_router(costs.router, prefix="/ai", tags=["costs"])

    @app.get("/")
    async def root():
        return {
            "service": "Fiscal AI Routing API",
            "version": __version__,
            "status": "operational",
            "docs": "/docs" if config.debug else "disabled"
        }

    @app.exception_handler(BudgetExceededError)
    async def budget_exceeded_handler(request: Request, exc: BudgetExceededError):
        return JSONResponse(
            status_code=402,
            content={
                "reason": exc.reason,
                "remainingBudget": round(exc.remaining_budget, 6),
                "suggestion": exc.suggestion,
            }
        )

    @app.exception_handler(RoutingTimeout)
    async def timeout_handler(request: Request, exc: RoutingTimeout):
        return JSONResponse(
            status_code=408,
            content={"error": str(exc), "fallbackAdvice": TIMEOUT_ADVICE}
        )

    @app.exception_handler(TierExecutionFailed)
    async def execution_failed_handler(request: Request, exc: TierExecutionFailed):
        return JSONResponse(
            status_code=502,
            content={"error": str(exc), "fallbackAdvice": FAILURE_ADVICE}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    return app


logging.basicConfig(level=settings.log_level)

app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "fiscal_ai.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
