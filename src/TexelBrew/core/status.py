"""Status values returned by fallible image operations."""

from enum import Enum


class Status(Enum):
    """Outcome of a descriptor, converter or codec call."""

    OK = "ok"
    INVALID_GEOMETRY = "invalid geometry"
    UNSUPPORTED_CONVERSION = "unsupported conversion"
    STREAM_FAULT = "stream fault"
    ALLOCATION_FAILURE = "allocation failure"
    FORMAT_ERROR = "format error"

    @property
    def ok(self) -> bool:
        return self is Status.OK

    def __str__(self) -> str:
        return self.value
