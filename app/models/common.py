# app/models/common.py
from __future__ import annotations

from bson import ObjectId
from pydantic import BaseModel, ConfigDict
from pydantic_core import core_schema


def parse_oid(x) -> ObjectId | None:
    if isinstance(x, ObjectId):
        return x
    if not x or not isinstance(x, str):
        return None
    x = x.strip()
    if not ObjectId.is_valid(x):
        return None
    return ObjectId(x)


class PyObjectId(ObjectId):
    """
    Pydantic v2 compatible ObjectId type:
    - Validates strings -> ObjectId
    - Produces proper JSON schema (so /openapi.json works)
    """

    @classmethod
    def __get_pydantic_core_schema__(cls, source, handler):
        def validate(v):
            if isinstance(v, ObjectId):
                return v
            if isinstance(v, str) and ObjectId.is_valid(v):
                return ObjectId(v)
            raise ValueError("Invalid ObjectId")

        return core_schema.no_info_plain_validator_function(
            validate,
            json_schema_input_schema=core_schema.str_schema(),
            serialization=core_schema.plain_serializer_function_ser_schema(str),
        )

    @classmethod
    def __get_pydantic_json_schema__(cls, core_schema_, handler):
        return {"type": "string", "examples": ["64b7c2c9f1c2a8b123456789"]}


class WasteBaseModel(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)
