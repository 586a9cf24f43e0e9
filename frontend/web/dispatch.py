from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from frontend.errors import InvalidPatternError


DISPATCHER_TYPE_KEY = "frontend.dispatcher_type"
FORWARD_REQUEST_URI_KEY = "frontend.forward.request_uri"


class DispatcherType(str, Enum):
    """Phase of request processing a filter mapping applies to."""

    REQUEST = "REQUEST"
    FORWARD = "FORWARD"
    INCLUDE = "INCLUDE"
    ASYNC = "ASYNC"
    ERROR = "ERROR"


def dispatcher_type_of(scope: dict[str, Any]) -> DispatcherType:
    return scope.get(DISPATCHER_TYPE_KEY, DispatcherType.REQUEST)


@dataclass(frozen=True)
class UrlPattern:
    """A servlet-style URL pattern.

    Four forms are accepted:

    * ``/*``           - matches every path
    * ``/prefix/*``    - matches ``/prefix`` and anything below it
    * ``*.ext``        - matches paths ending in ``.ext``
    * ``/exact/path``  - matches only that path (``/`` matches only the root)
    """

    pattern: str

    @classmethod
    def parse(cls, pattern: str) -> UrlPattern:
        if not pattern:
            raise InvalidPatternError("URL pattern must not be empty")

        if pattern.startswith("*."):
            if "/" in pattern or "*" in pattern[1:] or len(pattern) == 2:
                raise InvalidPatternError(f"Invalid extension pattern: {pattern!r}")
            return cls(pattern)

        if not pattern.startswith("/"):
            raise InvalidPatternError(f"URL pattern must start with '/' or '*.': {pattern!r}")

        star = pattern.find("*")
        if star != -1 and (not pattern.endswith("/*") or star != len(pattern) - 1):
            raise InvalidPatternError(f"Wildcard only allowed as a trailing '/*': {pattern!r}")
        return cls(pattern)

    @property
    def is_prefix(self) -> bool:
        return self.pattern.endswith("/*")

    @property
    def is_extension(self) -> bool:
        return self.pattern.startswith("*.")

    @property
    def prefix(self) -> str:
        """Path prefix for ``/prefix/*`` patterns ("" for ``/*``)."""

        return self.pattern[:-2] if self.is_prefix else self.pattern

    def matches(self, path: str) -> bool:
        if self.is_prefix:
            prefix = self.prefix
            return not prefix or path == prefix or path.startswith(prefix + "/")
        if self.is_extension:
            last = path.rsplit("/", 1)[-1]
            return last.endswith(self.pattern[1:])
        return path == self.pattern

    def __str__(self) -> str:
        return self.pattern
