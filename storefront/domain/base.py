from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys on the wire"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class Command(CamelModel):
    """Base class for all commands"""
    pass
