from typing import Optional
from pydantic import Field

from notifier.schemas.camel_base_model import CamelCaseBaseModel as BaseModel


class TriggerResult(BaseModel):
    message: str = Field(..., description="Acknowledgement message")
    processed_count: Optional[int] = Field(
        default=None, description="Occurrences written or enqueued by the run"
    )
    skipped: bool = Field(
        default=False, description="True when another instance held the job lock"
    )
