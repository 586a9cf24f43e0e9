from __future__ import annotations

from pathlib import Path

import structlog
from starlette.requests import Request
from starlette.responses import FileResponse, JSONResponse, Response
from starlette.types import Receive, Scope, Send
from starlette.websockets import WebSocketClose

from frontend.web.mime import MimeMappings


log = structlog.get_logger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class EmbeddedServletContainer:
    """Server-level settings shared by every request: MIME table, document root, port."""

    def __init__(self, *, document_root: str | Path | None = None, port: int = 8080) -> None:
        self.mime_mappings = MimeMappings(MimeMappings.DEFAULT)
        self.document_root: Path | None = None
        self.port = port
        if document_root is not None:
            self.set_document_root(document_root)

    def set_mime_mappings(self, mappings: MimeMappings) -> None:
        self.mime_mappings = MimeMappings(mappings)

    def set_document_root(self, document_root: str | Path) -> None:
        self.document_root = Path(document_root).resolve()

    def set_port(self, port: int) -> None:
        self.port = port

    def content_type_for(self, path: Path) -> str:
        if not path.suffix:
            return DEFAULT_CONTENT_TYPE
        return self.mime_mappings.get(path.suffix) or DEFAULT_CONTENT_TYPE

    def default_servlet(self) -> DefaultServlet:
        return DefaultServlet(self)


class DefaultServlet:
    """Serves files from the container's document root.

    Installed as the router's fallback, so it only sees requests no route
    claimed. The Content-Type comes from the container's MIME table.
    """

    welcome_file = "index.html"

    def __init__(self, container: EmbeddedServletContainer) -> None:
        self.container = container

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "websocket":
            await WebSocketClose()(scope, receive, send)
            return

        request = Request(scope)
        response = self._respond(request)
        await response(scope, receive, send)

    def _respond(self, request: Request) -> Response:
        if request.method not in ("GET", "HEAD"):
            return JSONResponse({"detail": "Method Not Allowed"}, status_code=405, headers={"Allow": "GET, HEAD"})

        root = self.container.document_root
        if root is None:
            return JSONResponse({"detail": "Not Found"}, status_code=404)

        path = request.scope["path"]
        relative = path.lstrip("/")
        try:
            file_path = (root / relative).resolve() if relative else root
            if not file_path.is_relative_to(root):
                log.warning("static_path_traversal_rejected", path=path)
                return JSONResponse({"detail": "Forbidden"}, status_code=403)

            if file_path.is_dir():
                file_path = file_path / self.welcome_file
            found = file_path.is_file()
        except (ValueError, OSError):
            # Null bytes, over-long names and the like.
            log.warning("static_path_unresolvable", path=path)
            found = False
        if not found:
            return JSONResponse({"detail": "Not Found"}, status_code=404)

        return FileResponse(file_path, media_type=self.container.content_type_for(file_path))
