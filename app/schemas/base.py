from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema reading attributes straight from ORM objects."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=False)
