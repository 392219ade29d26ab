from typing import Any, Dict, List, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse

from notifier.schemas.response_schemas import ApiResponse, ResponseStatus


class ResponseBuilder:
    """Builds the JSON envelope shared by every route and error handler."""

    @staticmethod
    def _build(request: Request, status_code: int, **fields: Any) -> JSONResponse:
        request_id = getattr(request.state, "request_id", None)
        response = ApiResponse(
            path=request.url.path,
            **({"request_id": request_id} if request_id else {}),
            **fields,
        )
        return JSONResponse(
            status_code=status_code,
            content=response.model_dump(exclude_none=True, by_alias=True),
        )

    @staticmethod
    def success(
        request: Request,
        data: Any = None,
        message: str = "Request successful",
        meta: Optional[Dict[str, Any]] = None,
        status_code: int = status.HTTP_200_OK,
    ) -> JSONResponse:
        return ResponseBuilder._build(
            request,
            status_code,
            success=True,
            status=ResponseStatus.SUCCESS,
            message=message,
            data=data,
            meta=meta,
        )

    @staticmethod
    def error(
        request: Request,
        message: str = "An error occurred",
        errors: Optional[List[Dict[str, Any]]] = None,
        error_code: Optional[str] = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        meta: Optional[Dict[str, Any]] = None,
    ) -> JSONResponse:
        """Error envelope; `error_code` is folded into `meta`."""
        response_meta = dict(meta or {})
        if error_code:
            response_meta["error_code"] = error_code

        return ResponseBuilder._build(
            request,
            status_code,
            success=False,
            status=ResponseStatus.ERROR,
            message=message,
            meta=response_meta or None,
            errors=errors,
        )
