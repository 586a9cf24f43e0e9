from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from starlette.types import ASGIApp, Receive, Scope, Send

from frontend.errors import InvalidPatternError
from frontend.web.dispatch import DispatcherType, UrlPattern

if TYPE_CHECKING:
    from frontend.web.context import ServletContext


@dataclass(frozen=True)
class FilterConfig:
    filter_name: str
    context: ServletContext
    init_parameters: Mapping[str, str] = field(default_factory=dict)

    def get_init_parameter(self, name: str, default: str | None = None) -> str | None:
        return self.init_parameters.get(name, default)


@dataclass(frozen=True)
class ServletConfig:
    servlet_name: str
    context: ServletContext
    init_parameters: Mapping[str, str] = field(default_factory=dict)

    def get_init_parameter(self, name: str, default: str | None = None) -> str | None:
        return self.init_parameters.get(name, default)


class Filter:
    """Intercepts requests whose path and dispatch phase match a mapping.

    ``chain`` is the rest of the pipeline as an ASGI app; a filter may call
    it (possibly with wrapped ``send``/``receive``) or answer on its own.
    """

    def init(self, config: FilterConfig) -> None:
        pass

    async def do_filter(self, scope: Scope, receive: Receive, send: Send, chain: ASGIApp) -> None:
        raise NotImplementedError

    def destroy(self) -> None:
        pass


class Servlet:
    def init(self, config: ServletConfig) -> None:
        pass

    async def service(self, scope: Scope, receive: Receive, send: Send) -> None:
        raise NotImplementedError

    def destroy(self) -> None:
        pass


class _Registration:
    def __init__(self, context: ServletContext, name: str) -> None:
        self._context = context
        self.name = name
        self._async_supported = False
        self._init_parameters: dict[str, str] = {}

    @property
    def async_supported(self) -> bool:
        return self._async_supported

    def set_async_supported(self, supported: bool) -> None:
        self._context.check_not_started()
        self._async_supported = bool(supported)

    def set_init_parameter(self, name: str, value: str) -> bool:
        """Set an init parameter; returns False if it was already set."""

        self._context.check_not_started()
        if name in self._init_parameters:
            return False
        self._init_parameters[name] = value
        return True

    @property
    def init_parameters(self) -> dict[str, str]:
        return dict(self._init_parameters)


@dataclass(frozen=True)
class FilterMapping:
    registration: FilterRegistration
    url_pattern: UrlPattern
    dispatcher_types: frozenset[DispatcherType]

    def applies_to(self, path: str, dispatcher_type: DispatcherType) -> bool:
        return dispatcher_type in self.dispatcher_types and self.url_pattern.matches(path)


class FilterRegistration(_Registration):
    def __init__(self, context: ServletContext, name: str, filter: Filter) -> None:
        super().__init__(context, name)
        self.filter = filter
        self._mappings: list[FilterMapping] = []

    def add_mapping_for_url_patterns(
        self,
        dispatcher_types: Iterable[DispatcherType] | None,
        is_match_after: bool,
        *url_patterns: str,
    ) -> None:
        """Map this filter to ``url_patterns`` for the given dispatch phases.

        ``None`` means REQUEST only. Mappings added with ``is_match_after``
        False run ahead of every mapping added with it True.
        """

        self._context.check_not_started()
        if not url_patterns:
            raise InvalidPatternError(f"Filter {self.name!r} needs at least one URL pattern")

        phases = frozenset(dispatcher_types) if dispatcher_types else frozenset({DispatcherType.REQUEST})
        mappings = [FilterMapping(self, UrlPattern.parse(p), phases) for p in url_patterns]
        for mapping in mappings:
            self._mappings.append(mapping)
            self._context.add_filter_mapping(mapping, is_match_after=is_match_after)

    @property
    def url_pattern_mappings(self) -> list[str]:
        return [str(m.url_pattern) for m in self._mappings]

    @property
    def dispatcher_types(self) -> frozenset[DispatcherType]:
        phases: set[DispatcherType] = set()
        for mapping in self._mappings:
            phases |= mapping.dispatcher_types
        return frozenset(phases)

    def config(self) -> FilterConfig:
        return FilterConfig(self.name, self._context, self.init_parameters)


class ServletRegistration(_Registration):
    def __init__(self, context: ServletContext, name: str, servlet: Servlet) -> None:
        super().__init__(context, name)
        self.servlet = servlet
        self._patterns: list[UrlPattern] = []
        self._load_on_startup = -1

    def add_mapping(self, *url_patterns: str) -> set[str]:
        """Map the servlet; returns the patterns already held by another servlet.

        Nothing is mapped when there are conflicts.
        """

        self._context.check_not_started()
        parsed = [UrlPattern.parse(p) for p in url_patterns]
        conflicts = self._context.claim_servlet_patterns(self, parsed)
        if not conflicts:
            self._patterns.extend(parsed)
        return conflicts

    @property
    def mappings(self) -> list[str]:
        return [str(p) for p in self._patterns]

    @property
    def load_on_startup(self) -> int:
        return self._load_on_startup

    def set_load_on_startup(self, priority: int) -> None:
        """Servlets with priority >= 0 are initialised at context start, lowest first."""

        self._context.check_not_started()
        self._load_on_startup = int(priority)

    def config(self) -> ServletConfig:
        return ServletConfig(self.name, self._context, self.init_parameters)


def describe(registration: Any) -> dict[str, Any]:
    """Plain-dict view of a registration, for logs and diagnostics."""

    if isinstance(registration, FilterRegistration):
        return {
            "name": registration.name,
            "url_patterns": registration.url_pattern_mappings,
            "dispatcher_types": sorted(t.value for t in registration.dispatcher_types),
            "async_supported": registration.async_supported,
        }
    return {
        "name": registration.name,
        "url_patterns": registration.mappings,
        "async_supported": registration.async_supported,
        "load_on_startup": registration.load_on_startup,
    }
