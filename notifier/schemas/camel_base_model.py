from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_serializer
from pydantic.alias_generators import to_camel


class CamelCaseBaseModel(BaseModel):
    """
    Base model for API payloads.

    Fields are snake_case in Python and camelCase on the wire; dump with
    `model_dump(by_alias=True)`. Enums and dates (datetimes included) are
    written as strings so trigger results can be embedded in JSON responses.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_serializer("*")
    def serialize_any(self, value):
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, dict):
            return {key: self.serialize_any(item) for key, item in value.items()}
        return value
