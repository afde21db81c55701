"""Shared model configuration."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Base for models that cross the HTTP boundary.

    Python code uses snake_case attributes; JSON uses camelCase
    (model_dump(by_alias=True)). Database rows validate by field name.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
