"""Metrics, liveness and readiness endpoints."""

from __future__ import annotations

from werkzeug.wrappers import Request, Response

from .web import Router


class MonitoringServer:
    def __init__(self, router: Router) -> None:
        self.router = router

    def routes(self) -> None:
        self.router.add_route("/metrics", self._metrics, ["GET"])
        self.router.add_route("/liveness", self._ok, ["GET"])
        self.router.add_route("/readiness", self._ok, ["GET"])

    @staticmethod
    def _metrics(request: Request) -> Response:
        return Response("up 1\n", status=200, content_type="text/plain; version=0.0.4; charset=utf-8")

    @staticmethod
    def _ok(request: Request) -> Response:
        return Response(b"", status=200)