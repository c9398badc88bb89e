import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Settings, get_settings
from contact_store import ContactStore
from db_models import ClearContactsResponse, ContactListResponse, FinalResponse, IdentifyRequest
from db_setup import Database
from errors import InvalidRequestError, ReconciliationError
from reconciliation import IdentityResolver

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level)
        database = Database(settings.database_path, settings.database_timeout_seconds)
        database.init_db()
        app.state.database = database
        app.state.resolver = IdentityResolver(database)
        logger.info("%s started, API endpoint: /identify", settings.app_title)
        yield
        logger.info("%s shutting down", settings.app_title)

    app = FastAPI(
        title=settings.app_title,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    @app.get("/")
    async def root():
        return {"message": "Bitespeed API is up"}

    @app.get("/health")
    async def health():
        return {"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.post("/identify", response_model=FinalResponse)
    def identify(payload: IdentifyRequest, request: Request):
        email = payload.email
        phone = payload.phoneNumber

        if not email and not phone:
            raise InvalidRequestError()

        resolver: IdentityResolver = request.app.state.resolver
        return FinalResponse(contact=resolver.identify(email, phone))

    @app.get("/contacts", response_model=ContactListResponse)
    def list_contacts(request: Request):
        with request.app.state.database.transaction() as conn:
            contacts = ContactStore(conn).list_contacts()
        return ContactListResponse(contacts=contacts)

    @app.delete("/contacts", response_model=ClearContactsResponse)
    def clear_contacts(request: Request):
        with request.app.state.database.transaction() as conn:
            deleted = ContactStore(conn).clear_contacts()
        logger.info("Cleared %s contacts", deleted)
        return ClearContactsResponse(message="All contacts cleared", deletedRows=deleted)

    return app


def register_error_handlers(app: FastAPI):
    @app.exception_handler(ReconciliationError)
    async def reconciliation_error_handler(request: Request, exc: ReconciliationError):
        level = logging.ERROR if exc.http_status >= 500 else logging.WARNING
        logger.log(level, "%s on %s: %s", exc.code, request.url.path, exc.message)
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Invalid request data",
                    "details": [
                        {
                            "field": ".".join(str(loc) for loc in e["loc"]),
                            "message": e["msg"],
                        }
                        for e in exc.errors()
                    ],
                },
            },
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred"}},
        )


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
