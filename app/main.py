import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from app.db.init_db import create_database
from app.db.base import Base
from app.db.session import engine, SessionLocal
from app.core.config import settings
from app.core.errors import SeatingError
from app.api.v1.router import api_router
from app.services.sweeper import ExpirySweeper

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Ensure DB exists and create tables
    create_database()
    Base.metadata.create_all(bind=engine)

    # Expire overdue holds in the background
    sweeper = None
    if settings.SWEEPER_ENABLED:
        sweeper = ExpirySweeper(session_factory=SessionLocal)
        await sweeper.start()
    yield

    # Shutdown: stop the sweeper
    if sweeper:
        await sweeper.stop()


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(SeatingError)
    async def seating_error_handler(request: Request, exc: SeatingError):
        body = exc.to_dict()
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
            if not settings.EXPOSE_ERROR_DETAILS:
                body["detail"] = "Internal server error"
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "detail": "Invalid request",
                "error": "invalid",
                "errors": _validation_errors(exc),
            },
        )


def _validation_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


from fastapi.middleware.cors import CORSMiddleware

app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# Set all CORS enabled origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)
app.include_router(api_router, prefix=settings.API_PREFIX)

@app.get("/")
def read_root():
    return {"service": settings.PROJECT_NAME, "status": "ok"}
