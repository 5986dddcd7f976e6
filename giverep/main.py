# giverep/main.py
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

from giverep.core.config import settings
from giverep.core.errors import ServiceError
from giverep.core.logging import configure_logging, get_logger
from giverep.database import engine, Base
from giverep.models import (  # noqa: F401  registers tables on Base.metadata
    legal_terms,
    loyalty_member,
    mindshare,
    project,
    reputation,
    reward,
    tweet,
    twitter_token,
    twitter_user_info,
)
from giverep.routers import (
    auth,
    legal_terms as legal_terms_routes,
    loyalty,
    loyalty_rewards,
    mindshare as mindshare_routes,
    reputation as reputation_routes,
    tags,
    twitter_user_info as twitter_user_info_routes,
)
from giverep import scheduler

load_dotenv()
configure_logging(settings.APP_NAME, settings.ENV, settings.LOG_LEVEL)
logger = get_logger(__name__)

app = FastAPI(title=settings.APP_NAME)

# CORS with credentials (for cookie sessions)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOW_ORIGINS,
    allow_credentials=settings.ALLOW_CREDENTIALS,
    allow_methods=settings.ALLOW_METHODS,
    allow_headers=settings.ALLOW_HEADERS,
)


@app.exception_handler(ServiceError)
def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_content())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/")
def read_root():
    return {"message": "GiveRep backend running"}


@app.get("/health")
def health():
    return {"status": "ok"}


# Routers
app.include_router(auth.router)
app.include_router(loyalty.router)
app.include_router(loyalty_rewards.router)
app.include_router(mindshare_routes.router)
app.include_router(tags.router)
app.include_router(twitter_user_info_routes.router)
app.include_router(legal_terms_routes.router)
app.include_router(reputation_routes.router)

# Create DB tables
Base.metadata.create_all(bind=engine)


@app.on_event("startup")
def start_background_jobs():
    if settings.SCHEDULER_ENABLED:
        scheduler.start_scheduler()


@app.on_event("shutdown")
def stop_background_jobs():
    scheduler.shutdown_scheduler()


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=settings.APP_NAME,
        version="1.0.0",
        description="Admin routes take the admin or project password as a Bearer token.",
        routes=app.routes,
    )
    openapi_schema["components"]["securitySchemes"] = {
        "BearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}
    }
    for path in openapi_schema["paths"].values():
        for method in path.values():
            method["security"] = [{"BearerAuth": []}]
    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi
