from fastapi import FastAPI, Request, status
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from redis.exceptions import RedisError
from .logging import get_logger
from .responses import ResponseBuilder

logger = get_logger()


class BusinessLogicError(Exception):
    """Custom exception for business logic errors."""

    def __init__(self, message: str, error_code: str = "BLOC_ERROR"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class NotFoundError(Exception):
    """Custom exception for resource not found errors."""

    def __init__(
        self, message: str = "Resource not found", error_code: str = "NOT_FOUND"
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class InvalidScheduleError(BusinessLogicError):
    """Raised when a calendar date cannot be turned into a UTC instant.

    Unknown timezone ids and local times that fall into a DST gap both end
    up here. Callers skip the affected user instead of failing the run.
    """

    def __init__(self, message: str, error_code: str = "INVALID_SCHEDULE"):
        super().__init__(message, error_code)


class DeliveryError(BusinessLogicError):
    """Raised by the delivery worker when the notification channel fails."""

    def __init__(self, message: str, error_code: str = "DELIVERY_ERROR"):
        super().__init__(message, error_code)


# Status code and meta error_type for the domain exceptions
DOMAIN_ERROR_STATUS = {
    NotFoundError: (status.HTTP_404_NOT_FOUND, "NOT_FOUND_ERROR"),
    BusinessLogicError: (status.HTTP_400_BAD_REQUEST, "BUSINESS_ERROR"),
}


def _format_validation_errors(exc: RequestValidationError):
    return [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]


def setup_error_handlers(app: FastAPI):
    """Map exceptions to the standard error envelope."""

    async def domain_exception_handler(request: Request, exc: Exception):
        status_code, error_type = next(
            mapping
            for exc_type, mapping in DOMAIN_ERROR_STATUS.items()
            if isinstance(exc, exc_type)
        )
        logger.error(f"{type(exc).__name__}: {exc.message}")
        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            error_code=exc.error_code,
            status_code=status_code,
            meta={"error_type": error_type},
        )

    for exc_type in DOMAIN_ERROR_STATUS:
        app.add_exception_handler(exc_type, domain_exception_handler)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.error(f"HTTP Exception: {exc.status_code} - {exc.detail}")
        return ResponseBuilder.error(
            request=request,
            message=str(exc.detail),
            error_code="HTTP_ERROR",
            status_code=exc.status_code,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        errors = _format_validation_errors(exc)
        logger.error(f"Request Validation Error: {errors}")
        return ResponseBuilder.error(
            request=request,
            message="Request validation failed",
            errors=errors,
            error_code="VALIDATION_ERROR",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"SQLAlchemy Error: {exc}")
        # Driver messages stay in the logs
        return ResponseBuilder.error(
            request=request,
            message="A database error occurred",
            error_code="DATABASE_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.exception_handler(RedisError)
    async def redis_exception_handler(request: Request, exc: RedisError):
        logger.error(f"Redis Error: {exc}")
        return ResponseBuilder.error(
            request=request,
            message="The lock/cache service is unavailable",
            error_code="REDIS_ERROR",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.opt(exception=exc).error(f"Unhandled Exception: {exc}")
        return ResponseBuilder.error(
            request=request,
            message="An internal server error occurred",
            error_code="INTERNAL_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
