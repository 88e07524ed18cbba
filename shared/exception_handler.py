import logging

from fastapi import FastAPI, Request, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from shared.core.schemas import JsonOutResult
from shared.utils.app_status_code import AppStatusCode
from kitpack_service.app.services.exceptions import KitPackError

logger = logging.getLogger(__name__)


def setup_exception_handlers(app: FastAPI):

    @app.exception_handler(KitPackError)
    async def kitpack_exception_handler(request: Request, exc: KitPackError):
        logger.info("%s %s failed: %s", request.method, request.url.path, exc.message)
        wrapped = JsonOutResult(
            data=exc.payload(),
            status="Failure",
            status_code=exc.status_code,
            message=exc.message
        ).model_dump()
        headers = {"Retry-After": "1"} if exc.retryable else None
        return JSONResponse(content=jsonable_encoder(wrapped), status_code=exc.http_status, headers=headers)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        # error_response() already puts a full envelope in the detail
        if isinstance(exc.detail, dict) and "status_code" in exc.detail:
            return JSONResponse(content=jsonable_encoder(exc.detail), status_code=exc.status_code)

        wrapped = JsonOutResult(
            data=None,
            status="Failure",
            status_code=AppStatusCode.OPERATION_FAILED,
            message=str(exc.detail)
        ).model_dump()
        return JSONResponse(content=wrapped, status_code=exc.status_code or 400)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        wrapped = JsonOutResult(
            data=jsonable_encoder(exc.errors()),
            status="Failure",
            status_code=AppStatusCode.INVALID_INPUT,
            message="Invalid request"
        ).model_dump()
        return JSONResponse(content=wrapped, status_code=422)

    # Catch all unhandled exceptions
    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

        wrapped = JsonOutResult(
            data=None,
            status="Failure",
            status_code=AppStatusCode.OPERATION_FAILED,
            message=str(exc)
        ).model_dump()
        return JSONResponse(content=wrapped, status_code=500)
