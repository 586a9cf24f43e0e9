from __future__ import annotations

from typing import Any

import structlog
from starlette.applications import Starlette
from starlette.types import ASGIApp, Receive, Scope, Send

from frontend.errors import IllegalStateError, RegistrationError
from frontend.web.dispatch import (
    DISPATCHER_TYPE_KEY,
    FORWARD_REQUEST_URI_KEY,
    DispatcherType,
    UrlPattern,
    dispatcher_type_of,
)
from frontend.web.registration import (
    Filter,
    FilterMapping,
    FilterRegistration,
    Servlet,
    ServletRegistration,
    describe,
)


log = structlog.get_logger(__name__)


class ServletContext:
    """Registry of filters and servlets in front of an ASGI application.

    Attributes live on ``app.state`` so route handlers can reach the same
    objects the filters see. Registration is only allowed until ``start()``.
    """

    def __init__(self, app: Starlette) -> None:
        self._app = app
        self._filters: dict[str, FilterRegistration] = {}
        self._servlets: dict[str, ServletRegistration] = {}
        self._before_mappings: list[FilterMapping] = []
        self._after_mappings: list[FilterMapping] = []
        self._servlet_patterns: dict[str, tuple[UrlPattern, ServletRegistration]] = {}
        self._initialized_filters: list[FilterRegistration] = []
        self._initialized_servlets: list[ServletRegistration] = []
        self._downstream: ASGIApp | None = None
        self._started = False
        self._start_error: Exception | None = None

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------

    def set_attribute(self, name: str, value: Any) -> None:
        setattr(self._app.state, name, value)

    def get_attribute(self, name: str) -> Any:
        return getattr(self._app.state, name, None)

    def remove_attribute(self, name: str) -> None:
        if hasattr(self._app.state, name):
            delattr(self._app.state, name)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return self._started

    def check_not_started(self) -> None:
        if self._started or self._start_error is not None:
            raise IllegalStateError("Servlet context has already been started")

    def add_filter(self, name: str, filter: Filter) -> FilterRegistration:
        self.check_not_started()
        if not name:
            raise RegistrationError("Filter name must not be empty")
        if name in self._filters:
            raise RegistrationError(f"Filter {name!r} is already registered")
        registration = FilterRegistration(self, name, filter)
        self._filters[name] = registration
        log.debug("filter_registered", filter=name)
        return registration

    def add_servlet(self, name: str, servlet: Servlet) -> ServletRegistration:
        self.check_not_started()
        if not name:
            raise RegistrationError("Servlet name must not be empty")
        if name in self._servlets:
            raise RegistrationError(f"Servlet {name!r} is already registered")
        registration = ServletRegistration(self, name, servlet)
        self._servlets[name] = registration
        log.debug("servlet_registered", servlet=name)
        return registration

    def add_filter_mapping(self, mapping: FilterMapping, *, is_match_after: bool) -> None:
        if is_match_after:
            self._after_mappings.append(mapping)
        else:
            self._before_mappings.append(mapping)

    def claim_servlet_patterns(
        self, registration: ServletRegistration, patterns: list[UrlPattern]
    ) -> set[str]:
        conflicts = {
            p.pattern
            for p in patterns
            if p.pattern in self._servlet_patterns and self._servlet_patterns[p.pattern][1] is not registration
        }
        if not conflicts:
            for pattern in patterns:
                self._servlet_patterns[pattern.pattern] = (pattern, registration)
        return conflicts

    @property
    def filter_registrations(self) -> list[FilterRegistration]:
        return list(self._filters.values())

    @property
    def servlet_registrations(self) -> list[ServletRegistration]:
        return list(self._servlets.values())

    def get_filter_registration(self, name: str) -> FilterRegistration | None:
        return self._filters.get(name)

    def get_servlet_registration(self, name: str) -> ServletRegistration | None:
        return self._servlets.get(name)

    @property
    def filter_mappings(self) -> list[FilterMapping]:
        return [*self._before_mappings, *self._after_mappings]

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def filters_for(self, path: str, dispatcher_type: DispatcherType) -> list[FilterRegistration]:
        """Filters to run for ``path``, in mapping order, each at most once."""

        chain: list[FilterRegistration] = []
        for mapping in self.filter_mappings:
            if mapping.registration not in chain and mapping.applies_to(path, dispatcher_type):
                chain.append(mapping.registration)
        return chain

    def servlet_for(self, path: str) -> ServletRegistration | None:
        """Servlet mapped to ``path``: exact, then longest prefix, then extension."""

        exact = self._servlet_patterns.get(path)
        if exact is not None and not exact[0].is_prefix and not exact[0].is_extension:
            return exact[1]

        best: tuple[int, ServletRegistration] | None = None
        for pattern, registration in self._servlet_patterns.values():
            if pattern.is_prefix and pattern.matches(path):
                if best is None or len(pattern.prefix) > best[0]:
                    best = (len(pattern.prefix), registration)
        if best is not None:
            return best[1]

        for pattern, registration in self._servlet_patterns.values():
            if pattern.is_extension and pattern.matches(path):
                return registration
        return None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Initialise filters, then load-on-startup servlets by priority."""

        if self._started:
            return
        if self._start_error is not None:
            raise IllegalStateError("Servlet context failed to start") from self._start_error

        try:
            for registration in self._filters.values():
                registration.filter.init(registration.config())
                self._initialized_filters.append(registration)

            eager = sorted(
                (r for r in self._servlets.values() if r.load_on_startup >= 0),
                key=lambda r: r.load_on_startup,
            )
            for registration in eager:
                self._init_servlet(registration)
        except Exception as exc:
            # A half-initialised chain must never serve requests.
            self._start_error = exc
            self.stop()
            log.error("servlet_context_start_failed", error=repr(exc))
            raise
        self._started = True

        log.info(
            "servlet_context_started",
            filters=[describe(r) for r in self._filters.values()],
            servlets=[describe(r) for r in self._servlets.values()],
        )

    def stop(self) -> None:
        for servlet in reversed(self._initialized_servlets):
            servlet.servlet.destroy()
        for registration in reversed(self._initialized_filters):
            registration.filter.destroy()
        self._initialized_servlets.clear()
        self._initialized_filters.clear()
        log.info("servlet_context_stopped")

    def _init_servlet(self, registration: ServletRegistration) -> None:
        if registration in self._initialized_servlets:
            return
        registration.servlet.init(registration.config())
        self._initialized_servlets.append(registration)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def bind(self, downstream: ASGIApp) -> None:
        """Set the app requests fall through to when no servlet matches."""

        if self._downstream is not None and self._downstream is not downstream:
            raise IllegalStateError("Servlet context is already bound to an application")
        self._downstream = downstream

    async def dispatch(
        self, scope: Scope, receive: Receive, send: Send, dispatcher_type: DispatcherType
    ) -> None:
        if self._downstream is None:
            raise IllegalStateError("Servlet context is not bound to an application")
        if not self._started:
            self.start()

        scope = dict(scope)
        scope[DISPATCHER_TYPE_KEY] = dispatcher_type
        path = scope["path"]

        servlet = self.servlet_for(path)
        terminal: ASGIApp = _ServletEndpoint(self, servlet) if servlet is not None else self._downstream

        app = terminal
        for registration in reversed(self.filters_for(path, dispatcher_type)):
            app = _FilterLink(registration, app, dispatcher_type)
        await app(scope, receive, send)

    def get_request_dispatcher(self, path: str) -> RequestDispatcher:
        if not path.startswith("/"):
            raise ValueError(f"Dispatch path must start with '/': {path!r}")
        return RequestDispatcher(self, path)


class RequestDispatcher:
    def __init__(self, context: ServletContext, path: str) -> None:
        self._context = context
        self.path = path

    async def forward(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Re-run the pipeline for ``path`` in the FORWARD phase."""

        forwarded = dict(scope)
        forwarded.setdefault(FORWARD_REQUEST_URI_KEY, scope["path"])
        forwarded["path"] = self.path
        forwarded["raw_path"] = self.path.encode("utf-8")
        await self._context.dispatch(forwarded, receive, send, DispatcherType.FORWARD)


class _FilterLink:
    def __init__(self, registration: FilterRegistration, next_app: ASGIApp, dispatcher_type: DispatcherType) -> None:
        self.registration = registration
        self.next_app = next_app
        self.dispatcher_type = dispatcher_type

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if self.dispatcher_type is DispatcherType.ASYNC and not self.registration.async_supported:
            raise IllegalStateError(f"Filter {self.registration.name!r} does not support async dispatch")
        await self.registration.filter.do_filter(scope, receive, send, self.next_app)


class _ServletEndpoint:
    def __init__(self, context: ServletContext, registration: ServletRegistration) -> None:
        self.context = context
        self.registration = registration

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        self.context._init_servlet(self.registration)
        await self.registration.servlet.service(scope, receive, send)


class FilterChainMiddleware:
    """Runs registered filters (and servlets) ahead of the wrapped app."""

    def __init__(self, app: ASGIApp, context: ServletContext) -> None:
        self.app = app
        self.context = context
        context.bind(app)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return
        await self.context.dispatch(scope, receive, send, dispatcher_type_of(scope))
