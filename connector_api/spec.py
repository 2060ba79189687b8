"""Serving the OpenAPI specification file."""

from __future__ import annotations

import logging

from werkzeug.wrappers import Request, Response

from .web import Router

log = logging.getLogger(__name__)


class ApiSpecServer:
    def __init__(self, router: Router, url_prefix: str, spec_file_name: str) -> None:
        self.router = router
        self.url_prefix = url_prefix
        self.spec_file_name = spec_file_name

    def routes(self) -> None:
        self.router.add_route(self.url_prefix + "/openapi.json", self._handle, ["GET"])

    def _handle(self, request: Request) -> Response:
        try:
            with open(self.spec_file_name, "rb") as handle:
                content = handle.read()
        except OSError as exc:
            log.warning("Unable to read API spec file (%s): %s", self.spec_file_name, exc)
            return Response(b"", status=404)
        return Response(content, status=200, content_type="text/plain; charset=utf-8")