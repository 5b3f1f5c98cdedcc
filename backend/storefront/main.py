import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, cast

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException

from .config import get_settings
from .database import Database
from .routers import (
    addresses,
    admin_available_dates,
    admin_orders,
    available_dates,
    cart,
    contacts,
    orders,
    products,
    sizes,
    users,
)
from .utils.mailer import LoggingMailer
from .utils.request_id import REQUEST_ID_HEADER, generate_request_id, reset_request_id, set_request_id

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    database = Database.from_settings(settings)
    if settings.create_tables:
        await database.create_all()
    app.state.database = database
    app.state.mailer = LoggingMailer()
    try:
        yield
    finally:
        await database.dispose()


async def request_id_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
    token = set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        reset_request_id(token)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    http_exc = cast(HTTPException, exc)
    return JSONResponse(
        status_code=http_exc.status_code,
        content={"success": False, "error": http_exc.detail},
        headers=http_exc.headers,
    )


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    messages = []
    for error in cast(RequestValidationError, exc).errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": "; ".join(messages) or "Invalid request"},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "Internal server error"},
    )


def create_app() -> FastAPI:
    app = FastAPI(title="Storefront Booking API", lifespan=lifespan)
    app.middleware("http")(request_id_middleware)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(available_dates.router)
    app.include_router(admin_available_dates.router)
    app.include_router(products.router)
    app.include_router(products.admin_router)
    app.include_router(cart.router)
    app.include_router(orders.router)
    app.include_router(admin_orders.router)
    app.include_router(contacts.router)
    app.include_router(contacts.admin_router)
    app.include_router(users.router)
    app.include_router(users.admin_router)
    app.include_router(addresses.router)
    app.include_router(sizes.router)
    return app


app = create_app()
