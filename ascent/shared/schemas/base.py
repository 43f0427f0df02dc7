"""Pydantic base for engine inputs and read models."""

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Builds from ORM rows and stores enums as their string values."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True,
    )
