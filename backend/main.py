#######################
# IMPORTS
#######################
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

#######################
# CONFIG
#######################

# Environment must be loaded before the backend modules read their settings
load_dotenv()

from backend.ai import LLMGateway, ModelTier  # noqa: E402
from backend.database import RecordStore  # noqa: E402
from backend.errors import ContentError  # noqa: E402
from backend.exports import ExportRenderer  # noqa: E402

PORT = int(os.getenv("PORT", "3000"))
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger("app")


#######################
# STARTUP
#######################
def create_app(
    store: RecordStore = None,
    gateway: LLMGateway = None,
    renderer: ExportRenderer = None,
) -> FastAPI:
    """Build the app. Services not passed in are constructed from the environment at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        app.state.store = store or RecordStore()
        app.state.gateway = gateway or LLMGateway()
        app.state.renderer = renderer or ExportRenderer()
        app.state.store.init()
        app.state.renderer.init()
        logger.info(f"Exports directory: {app.state.renderer.exports_dir}")
        yield
        # Shutdown
        await app.state.gateway.aclose()
        app.state.store.close()

    app = FastAPI(lifespan=lifespan, root_path="/api", title="ClassGPT API")

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in CORS_ORIGINS.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition"],
    )

    @app.exception_handler(ContentError)
    async def content_error_handler(request: Request, exc: ContentError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.kind}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": exc.kind, "message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg', 'Invalid request')}" if location else first.get("msg", "Invalid request")
        return JSONResponse(status_code=400, content={"error": "validation_error", "message": message})

    @app.get("/health", tags=["Health"])
    async def health_endpoint():
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "models": [tier.value for tier in ModelTier],
        }

    # Include endpoint routers
    from backend.endpoints.content import router as content_router
    from backend.endpoints.topics import router as topics_router

    app.include_router(content_router)
    app.include_router(topics_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("backend.main:app", host="0.0.0.0", port=PORT)
