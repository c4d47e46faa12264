from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from matchengine.api.middleware import RequestTimingMiddleware
from matchengine.api.v1.router import v1_router
from matchengine.common.exceptions import MatchEngineException
from matchengine.common.logging import setup_logging
from matchengine.config import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    yield


app = FastAPI(
    title="Match Engine API",
    description="Vendor matching and routing for service requests",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
origins = settings.ALLOWED_ORIGINS.split(",") if settings.ALLOWED_ORIGINS != "*" else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestTimingMiddleware)


@app.exception_handler(MatchEngineException)
async def match_engine_exception_handler(request: Request, exc: MatchEngineException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"success": False, "error": "Invalid request body"})


# API routes
app.include_router(v1_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": "matchengine",
        "version": "1.0.0",
        "env": settings.APP_ENV,
    }
