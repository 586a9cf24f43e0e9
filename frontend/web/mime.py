from __future__ import annotations

import mimetypes
from collections.abc import Iterable, Iterator, Mapping


def _normalize(extension: str) -> str:
    return extension.lstrip(".").lower()


class MimeMappings:
    """File extension -> content type table used when serving static files.

    Extensions are stored without the leading dot and compared
    case-insensitively.
    """

    DEFAULT: MimeMappings

    def __init__(
        self,
        mappings: MimeMappings | Mapping[str, str] | Iterable[tuple[str, str]] | None = None,
        *,
        read_only: bool = False,
    ) -> None:
        self._table: dict[str, str] = {}
        if mappings is not None:
            items = mappings.items() if isinstance(mappings, (MimeMappings, Mapping)) else mappings
            for extension, mime_type in items:
                self._table[_normalize(extension)] = mime_type
        self._read_only = read_only

    def add(self, extension: str, mime_type: str) -> str | None:
        """Add a mapping, returning the previous content type if any."""

        self._check_writable()
        key = _normalize(extension)
        previous = self._table.get(key)
        self._table[key] = mime_type
        return previous

    def remove(self, extension: str) -> str | None:
        self._check_writable()
        return self._table.pop(_normalize(extension), None)

    def get(self, extension: str) -> str | None:
        return self._table.get(_normalize(extension))

    def items(self) -> Iterator[tuple[str, str]]:
        return iter(self._table.items())

    def _check_writable(self) -> None:
        if self._read_only:
            raise TypeError("MimeMappings.DEFAULT is read-only; copy it first")

    def __contains__(self, extension: object) -> bool:
        return isinstance(extension, str) and _normalize(extension) in self._table

    def __iter__(self) -> Iterator[str]:
        return iter(self._table)

    def __len__(self) -> int:
        return len(self._table)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MimeMappings):
            return NotImplemented
        return self._table == other._table

    def __repr__(self) -> str:
        return f"MimeMappings({len(self._table)} entries)"


# Built-in table of the stdlib, independent of /etc/mime.types on the host.
MimeMappings.DEFAULT = MimeMappings(mimetypes.MimeTypes().types_map[True], read_only=True)
