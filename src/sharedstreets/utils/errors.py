from __future__ import annotations

from typing import Any, TYPE_CHECKING
from pydantic import ValidationError

if TYPE_CHECKING:
    from ..tiles.paths import TilePath


class SharedStreetsError(Exception):
    """Base class for every error raised by the package."""


class InvalidGeometryError(SharedStreetsError, ValueError):
    pass


class UnknownEnumValueError(SharedStreetsError, ValueError):
    def __init__(self, enum_name: str, value: Any):
        self.enum_name = enum_name
        self.value = value
        super().__init__(f"[{value}] unknown {enum_name} value")


class LocationReferenceInvariantError(SharedStreetsError, ValueError):
    pass


class TileFetchError(SharedStreetsError):
    """Raised when tile bytes could not be retrieved after all retries."""

    def __init__(self, locator: str, attempts: int, cause: BaseException | None = None):
        self.locator = locator
        self.attempts = attempts
        self.cause = cause
        msg = f"Failed to fetch tile '{locator}' after {attempts} attempt(s)"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)


class TileDecodeError(SharedStreetsError):
    def __init__(self, tile_path: "TilePath", cause: BaseException | None = None):
        self.tile_path = tile_path
        self.cause = cause
        msg = f"Unable to decode tile '{tile_path.to_path()}'"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)


class OffsetOutOfRangeError(SharedStreetsError, ValueError):
    def __init__(self, reference_id: str, offset: float, length: float):
        self.reference_id = reference_id
        self.offset = offset
        self.length = length
        super().__init__(
            f"Offset {offset} is outside reference {reference_id} (length {length:.2f}m)"
        )


class ReferenceNotFoundError(SharedStreetsError, LookupError):
    def __init__(self, reference_id: str):
        self.reference_id = reference_id
        super().__init__(
            f"Reference {reference_id} is not indexed; load the tiles covering it first"
        )


class BatchInputValidationError(SharedStreetsError):
    def __init__(self, source: str, errors: list[dict[str, Any]], original: ValidationError | None = None):
        self.source = source
        self.errors = errors
        self.original = original
        msg = f"Validation failed for {len(errors)} features from '{source}'"

        super().__init__(msg)

    def summary(self, limit: int = 5) -> str:
        """Human-readable summary of the first few validation issues."""
        lines = []
        for err in self.errors[:limit]:
            loc = ".".join(str(p) for p in err.get("loc", []))
            lines.append(f"- {loc}: {err.get('msg')} ({err.get('type')})")
        if len(self.errors) > limit:
            lines.append(f"... ({len(self.errors) - limit} more)")
        return "\n".join(lines)
