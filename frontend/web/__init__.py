"""Servlet-style filter and servlet registration on top of Starlette."""

from frontend.web.context import FilterChainMiddleware, RequestDispatcher, ServletContext
from frontend.web.dispatch import DispatcherType, UrlPattern
from frontend.web.mime import MimeMappings
from frontend.web.registration import (
    Filter,
    FilterConfig,
    FilterRegistration,
    Servlet,
    ServletConfig,
    ServletRegistration,
)
from frontend.web.server import DefaultServlet, EmbeddedServletContainer

__all__ = [
    "DefaultServlet",
    "DispatcherType",
    "EmbeddedServletContainer",
    "Filter",
    "FilterChainMiddleware",
    "FilterConfig",
    "FilterRegistration",
    "MimeMappings",
    "RequestDispatcher",
    "Servlet",
    "ServletConfig",
    "ServletContext",
    "ServletRegistration",
    "UrlPattern",
]
