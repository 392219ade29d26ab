import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field

from notifier.schemas.camel_base_model import CamelCaseBaseModel
from notifier.utils.datetime_utils import utc_now


class ResponseStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class ApiResponse(CamelCaseBaseModel):
    """Envelope returned by the trigger, health and webhook sink routes."""

    success: bool
    status: ResponseStatus
    message: str
    data: Optional[Any] = None
    meta: Optional[Dict[str, Any]] = None
    errors: Optional[List[Dict[str, Any]]] = Field(
        default=None, description="Field level validation errors"
    )
    timestamp: str = Field(default_factory=lambda: utc_now().isoformat())
    # Replaced by the X-Request-ID value whenever the middleware has run
    request_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    path: Optional[str] = None
