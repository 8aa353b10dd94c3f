"""
Success half of the response envelope: {"success": true, "data": ..., "error": null}
"""
from typing import Any

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel


def envelope(data: Any = None, message: str | None = None) -> dict[str, Any]:
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    elif isinstance(data, list):
        data = [item.model_dump(mode="json") if isinstance(item, BaseModel) else item for item in data]
    body: dict[str, Any] = {"success": True, "data": jsonable_encoder(data), "error": None}
    if message:
        body["message"] = message
    return body
