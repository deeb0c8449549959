import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from quizhub.api.v1 import api_router
from quizhub.core.config import settings
from quizhub.db.database import check_connection
from quizhub.services.errors import QuizHubError

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

cors_origins = settings.cors_origins
logger.info(f"CORS allowed origins: {cors_origins}")
logger.info(f"DEBUG mode: {settings.DEBUG}")

# Development: also allow the usual local frontend ports
if settings.DEBUG:
    localhost_origins = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:5174",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:5174",
    ]
    cors_origins = list(dict.fromkeys(cors_origins + localhost_origins))
    logger.info(f"DEBUG mode: Extended CORS origins to {cors_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,  # admin cookie
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    expose_headers=["*"],
    max_age=3600,
)


@app.exception_handler(QuizHubError)
async def quizhub_error_handler(request: Request, exc: QuizHubError):
    if exc.status_code >= 500:
        logger.error(f"[{request.method} {request.url.path}] {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder({"detail": exc.message, **exc.extra}),
    )


app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    return {
        "message": "QuizHub API",
        "version": settings.VERSION,
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    if not check_connection():
        return JSONResponse(status_code=503, content={"status": "unhealthy", "database": "unreachable"})
    return {"status": "healthy", "database": "ok"}
