from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..utils.errors import BatchInputValidationError


class LocateRequest(BaseModel):
    """Properties of one feature of a batch locate input."""
    model_config = ConfigDict(extra="allow")

    shst_ref: str = Field(min_length=1)
    shst_offset: float
    shst_tile_ids: list[str] = Field(default_factory=list)


def parse_locate_requests(collection: dict[str, Any], source: str = "batch") -> list[LocateRequest]:
    """Validate every feature of a FeatureCollection; report all bad rows at once."""
    if collection.get("type") != "FeatureCollection":
        raise BatchInputValidationError(source, [{
            "loc": ("type",), "msg": "Input must be a FeatureCollection", "type": "value_error",
        }])

    requests: list[LocateRequest] = []
    errors: list[dict[str, Any]] = []
    for i, feature in enumerate(collection.get("features") or []):
        try:
            requests.append(LocateRequest.model_validate((feature or {}).get("properties") or {}))
        except ValidationError as e:
            for err in e.errors():
                errors.append({**err, "loc": ("features", i, "properties", *err.get("loc", ()))})

    if errors:
        raise BatchInputValidationError(source, errors)
    return requests
