"""The v2 REST interface, keyed by the caller's org id."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from werkzeug.wrappers import Request, Response

from .message_receiver import (
    CONNECTED_STATUS,
    DECODE_ERROR,
    DISCONNECTED_STATUS,
    EMPTY_DIRECTIVE_ERROR,
    connection_failure_response,
)
from .pagination import build_paginated_response
from .types import ConnectionNotFoundError, ConnectorClientState, DisconnectedNodeError
from .web import (
    Router,
    decode_json,
    error_response,
    get_offset_and_limit_from_query_params,
    get_principal,
    json_response,
)

log = logging.getLogger(__name__)

SEND_ERROR = "Error passing message to rhc client"
LOOKUP_ERROR = "Error looking up connections by org_id"

GetConnectionByClientID = Callable[[str, str], ConnectorClientState]
GetConnectionsByOrgID = Callable[[str, int, int], "tuple[Mapping[str, ConnectorClientState], int]"]


@dataclass
class _MessageRequestV2:
    payload: Any = None
    metadata: Any = None
    directive: str = field(default="", metadata={"required": True})


def connection_response(state: ConnectorClientState) -> dict[str, Any]:
    """Describe a connection, leaving out empty fields."""
    items = {
        "account": state.account,
        "org_id": state.org_id,
        "client_id": state.client_id,
        "canonical_facts": state.canonical_facts,
        "dispatchers": state.dispatchers,
        "tags": state.tags,
    }
    return {key: value for key, value in items.items() if value}


def connection_status_response(state: ConnectorClientState) -> dict[str, Any]:
    """Describe a connection that is known to be up."""
    return {"status": CONNECTED_STATUS, **connection_response(state)}


class ConnectionMediatorV2:
    """Sends messages to, and reports on, the connections of one organisation."""

    def __init__(
        self,
        get_connection_by_client_id: GetConnectionByClientID,
        get_connections_by_org_id: GetConnectionsByOrgID,
        proxy_factory: Any,
        router: Router,
        url_prefix: str,
    ) -> None:
        self.get_connection_by_client_id = get_connection_by_client_id
        self.get_connections_by_org_id = get_connections_by_org_id
        self.proxy_factory = proxy_factory
        self.router = router
        self.url_prefix = url_prefix

    def routes(self) -> None:
        base = f"{self.url_prefix}/v2/connections"
        add = self.router.add_route
        add(f"{base}/<client_id>/message", self._handle_send_message, ["POST"], secured=True)
        add(f"{base}/<client_id>/status", self._handle_connection_status, ["GET"], secured=True)
        add(base, self._handle_connection_list, ["GET"], secured=True)

    def _handle_send_message(self, request: Request, client_id: str) -> Response:
        principal = get_principal(request)

        try:
            message = decode_json(request.get_data(), _MessageRequestV2)
        except ValueError as exc:
            log.error("%s: %s", DECODE_ERROR, exc)
            return error_response(DECODE_ERROR, 400, str(exc))

        if not message.directive.strip():
            log.debug(EMPTY_DIRECTIVE_ERROR)
            return error_response(EMPTY_DIRECTIVE_ERROR, 400, EMPTY_DIRECTIVE_ERROR)

        log.info("Looking up connection for org_id:%s - client id:%s", principal.org_id, client_id)

        try:
            state = self.get_connection_by_client_id(principal.org_id, client_id)
        except ConnectionNotFoundError:
            return connection_failure_response()
        except Exception as exc:
            log.error("Unable to locate connection: %s", exc)
            return connection_failure_response()

        try:
            client = self.proxy_factory.create_proxy(
                state.org_id, state.account, state.client_id,
                state.canonical_facts, state.dispatchers, state.tags,
            )
        except Exception as exc:
            log.error("Unable to create proxy for connection: %s", exc)
            return connection_failure_response()

        log.info("Sending a message (directive %s)", message.directive)

        try:
            job_id = client.send_message(message.directive, message.metadata, message.payload)
        except DisconnectedNodeError:
            return connection_failure_response()
        except Exception as exc:
            log.error("%s: %s", SEND_ERROR, exc)
            return error_response(SEND_ERROR, 500, str(exc))

        log.info("Message sent: %s", job_id)
        return json_response(201, {"id": str(job_id)})

    def _handle_connection_status(self, request: Request, client_id: str) -> Response:
        principal = get_principal(request)
        log.info("Checking connection status for org_id:%s - client id:%s", principal.org_id, client_id)

        try:
            state = self.get_connection_by_client_id(principal.org_id, client_id)
        except ConnectionNotFoundError:
            log.debug("Connection not found")
            return json_response(200, {"status": DISCONNECTED_STATUS})
        except Exception as exc:
            log.error("Failed to lookup connection: %s", exc)
            return connection_failure_response()

        log.debug("Connection found")
        return json_response(200, connection_status_response(state))

    def _handle_connection_list(self, request: Request) -> Response:
        principal = get_principal(request)
        log.debug("Getting connections for %s", principal.org_id)

        try:
            offset, limit = get_offset_and_limit_from_query_params(request.args)
        except ValueError as exc:
            log.error("Unable to retrieve offset/limit from request: %s", exc)
            return error_response("Invalid request", 400, str(exc))

        try:
            connections, total = self.get_connections_by_org_id(principal.org_id, offset, limit)
        except Exception as exc:
            log.error("%s: %s", LOOKUP_ERROR, exc)
            return error_response(LOOKUP_ERROR, 500, str(exc))

        data = [connection_response(state) for state in connections.values()]
        response = build_paginated_response(request.full_path, offset, limit, total, data)
        return json_response(200, response.to_dict())