"""Base model configuration for all data structures."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Model(BaseModel):
    """Base model with standard configuration."""

    model_config = ConfigDict(frozen=True)


class ProtocolModel(BaseModel):
    """Base model for protocol messages, serialised with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json(self) -> str:
        """Serialise with protocol field names, leaving out unset fields."""
        return self.model_dump_json(by_alias=True, exclude_none=True)
