from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .directory import EntityKind


class MappingError(Exception):
    pass


class CacheEmptyError(MappingError):
    """Directory read before any successful refresh."""


class RefreshFailedError(MappingError):
    """One of the directory listings failed; the cache was left untouched."""


class InconsistentDirectoryError(MappingError):
    """An entity was created but is still not visible after a forced refresh."""


class RowConversionError(MappingError):
    """Row-level failure. Collected per row by the batch converter, never fatal to the batch."""


class NotFoundError(RowConversionError):
    def __init__(self, kind: "EntityKind", name: str, known_names: Sequence[str]):
        self.kind = kind
        self.name = name
        self.known_names = list(known_names)
        if self.known_names:
            known = f"Available {kind.plural}: {', '.join(self.known_names)}"
        else:
            known = f"No {kind.plural} are defined yet"
        super().__init__(f'{kind.label} "{name}" not found. {known}')


class CreationFailedError(RowConversionError):
    def __init__(self, not_found: NotFoundError, reason: str):
        self.not_found = not_found
        self.reason = reason
        super().__init__(f"{not_found} Auto-creation failed: {reason}")


@dataclass(frozen=True)
class ConversionError:
    row: int
    message: str

    def line(self) -> str:
        return f"Row {self.row}: {self.message}"


class BatchConversionError(MappingError):
    def __init__(self, errors: Sequence[ConversionError]):
        self.errors = list(errors)
        super().__init__("\n".join(e.line() for e in self.errors))
