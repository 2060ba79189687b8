"""The v1 management endpoints for listing and controlling connections."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from werkzeug.routing import BaseConverter
from werkzeug.wrappers import Request, Response

from .clients import create_connector_client_proxy
from .message_receiver import (
    CONNECTED_STATUS,
    DECODE_ERROR,
    DISCONNECTED_STATUS,
    get_connection_status,
)
from .pagination import build_paginated_response
from .types import ConnectorClientState
from .web import (
    Router,
    decode_json,
    error_response,
    get_limit_from_query_params,
    get_offset_from_query_params,
    json_response,
)

log = logging.getLogger(__name__)

NEGATIVE_DELAY_ERROR = "Delay field cannot be negative"
PING_ERROR = "Ping failed"
INVALID_INPUT_ERROR = "Unable to process input parameters"

GetConnectionByClientID = Callable[[str, str], ConnectorClientState]
GetConnectionsByOrgID = Callable[[str, int, int], "tuple[Mapping[str, ConnectorClientState], int]"]
GetAllConnections = Callable[[int, int], "tuple[Mapping[str, Mapping[str, ConnectorClientState]], int]"]


class _DigitsConverter(BaseConverter):
    regex = "[0-9]+"


@dataclass
class _ConnectionID:
    account: str = field(default="", metadata={"required": True})
    node_id: str = field(default="", metadata={"required": True})


@dataclass
class _DisconnectRequest:
    account: str = field(default="", metadata={"required": True})
    node_id: str = field(default="", metadata={"required": True})
    message: str = ""


@dataclass
class _ReconnectRequest:
    account: str = field(default="", metadata={"required": True})
    node_id: str = field(default="", metadata={"required": True})
    delay: int = field(default=0, metadata={"required": True})
    message: str = ""


def _invalid_input_response(exc: Exception) -> Response:
    log.error("%s: %s", INVALID_INPUT_ERROR, exc)
    return error_response(INVALID_INPUT_ERROR, 400, str(exc))


def _listing_params(request: Request) -> tuple[int, int]:
    """Return ``(offset, limit)``; the limit is checked first."""
    limit = get_limit_from_query_params(request.args)
    offset = get_offset_from_query_params(request.args)
    return offset, limit


class ManagementServer:
    """Internal endpoints for inspecting and controlling client connections."""

    def __init__(
        self,
        get_connection_by_client_id: GetConnectionByClientID,
        get_connections_by_org_id: GetConnectionsByOrgID,
        get_all_connections: GetAllConnections,
        tenant_translator: Any,
        proxy_factory: Any,
        router: Router,
        url_prefix: str,
    ) -> None:
        self.get_connection_by_client_id = get_connection_by_client_id
        self.get_connections_by_org_id = get_connections_by_org_id
        self.get_all_connections = get_all_connections
        self.tenant_translator = tenant_translator
        self.proxy_factory = proxy_factory
        self.router = router
        self.url_prefix = url_prefix

    def routes(self) -> None:
        self.router.url_map.converters["digits"] = _DigitsConverter
        base = f"{self.url_prefix}/v1/connection"
        add = self.router.add_route
        add(base, self._handle_connection_listing, ["GET"], secured=True)
        add(f"{base}/<digits:account_id>", self._handle_connection_listing_by_account, ["GET"], secured=True)
        add(f"{base}/disconnect", self._handle_disconnect, ["POST"], secured=True)
        add(f"{base}/reconnect", self._handle_reconnect, ["POST"], secured=True)
        add(f"{base}/status", self._handle_connection_status, ["POST"], secured=True)
        add(f"{base}/ping", self._handle_connection_ping, ["POST"], secured=True)

    def _create_client(self, account: str, client_id: str) -> Any:
        return create_connector_client_proxy(
            self.tenant_translator,
            self.get_connection_by_client_id,
            self.proxy_factory,
            account,
            client_id,
        )

    @staticmethod
    def _no_connection_response(account: str, node_id: str) -> Response:
        message = f"No connection found for node ({account}:{node_id})"
        log.info(message)
        return error_response(message, 400, message)

    def _handle_disconnect(self, request: Request) -> Response:
        try:
            disconnect = decode_json(request.get_data(), _DisconnectRequest)
        except ValueError as exc:
            return error_response(DECODE_ERROR, 400, str(exc))

        try:
            client = self._create_client(disconnect.account, disconnect.node_id)
        except Exception:
            return self._no_connection_response(disconnect.account, disconnect.node_id)

        log.info("Attempting to disconnect account:%s - node id:%s", disconnect.account, disconnect.node_id)
        client.disconnect(disconnect.message)
        return json_response(200, {})

    def _handle_reconnect(self, request: Request) -> Response:
        try:
            reconnect = decode_json(request.get_data(), _ReconnectRequest)
        except ValueError as exc:
            return error_response(DECODE_ERROR, 400, str(exc))

        if reconnect.delay < 0:
            log.info(NEGATIVE_DELAY_ERROR)
            return error_response(NEGATIVE_DELAY_ERROR, 400, NEGATIVE_DELAY_ERROR)

        try:
            client = self._create_client(reconnect.account, reconnect.node_id)
        except Exception:
            return self._no_connection_response(reconnect.account, reconnect.node_id)

        log.info("Attempting to reconnect account:%s - node id:%s", reconnect.account, reconnect.node_id)
        client.reconnect(reconnect.message, reconnect.delay)
        return json_response(200, None)

    def _handle_connection_status(self, request: Request) -> Response:
        # The management interface does not compare the caller's account
        # with the account in the request.
        return get_connection_status(
            request,
            self.tenant_translator,
            self.get_connection_by_client_id,
            lambda _request, _conn_id: None,
        )

    def _handle_connection_listing(self, request: Request) -> Response:
        log.debug("Getting connection list")
        try:
            offset, limit = _listing_params(request)
        except ValueError as exc:
            return _invalid_input_response(exc)

        try:
            all_connections, total = self.get_all_connections(offset, limit)
        except Exception as exc:
            log.error("Unable to list connections: %s", exc)
            all_connections, total = {}, 0

        log.debug("totalConnections: %d", total)
        data = [
            {"account": str(account), "connections": [str(client_id) for client_id in clients]}
            for account, clients in all_connections.items()
        ]
        response = build_paginated_response(request.full_path, offset, limit, total, data)
        return json_response(200, response.to_dict())

    def _handle_connection_listing_by_account(self, request: Request, account_id: str) -> Response:
        try:
            offset, limit = _listing_params(request)
        except ValueError as exc:
            return _invalid_input_response(exc)

        log.debug("Getting connections for %s", account_id)

        try:
            org_id = self.tenant_translator.ean_to_org_id(account_id)
        except Exception as exc:
            log.error("Unable to translate account (%s) to org_id", account_id)
            return _invalid_input_response(exc)
        log.info("Translated account %s to org_id %s", account_id, org_id)

        try:
            connections, total = self.get_connections_by_org_id(org_id, offset, limit)
        except Exception as exc:
            log.error("Unable to list connections for org_id %s: %s", org_id, exc)
            connections, total = {}, 0

        log.debug("totalConnections: %d", total)
        data = [str(client_id) for client_id in connections]
        response = build_paginated_response(request.full_path, offset, limit, total, data)
        return json_response(200, response.to_dict())

    def _handle_connection_ping(self, request: Request) -> Response:
        try:
            conn_id = decode_json(request.get_data(), _ConnectionID)
        except ValueError as exc:
            return error_response(DECODE_ERROR, 400, str(exc))

        log.info("Submitting ping for account:%s - node id:%s", conn_id.account, conn_id.node_id)

        try:
            client = self._create_client(conn_id.account, conn_id.node_id)
        except Exception:
            log.info("No connection found for node (%s:%s)", conn_id.account, conn_id.node_id)
            return json_response(200, {"status": DISCONNECTED_STATUS, "payload": None})

        try:
            client.ping()
        except Exception as exc:
            return error_response(PING_ERROR, 400, str(exc))

        return json_response(200, {"status": CONNECTED_STATUS, "payload": None})