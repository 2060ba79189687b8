"""The v1 message and connection-status endpoints."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from werkzeug.wrappers import Request, Response

from .clients import create_connector_client_proxy
from .types import ConnectorClientState, DisconnectedNodeError
from .web import Router, decode_json, error_response, get_principal, json_response

log = logging.getLogger(__name__)

CONNECTED_STATUS = "connected"
DISCONNECTED_STATUS = "disconnected"
ACCOUNT_MISMATCH_ERROR = "Account mismatch"
EMPTY_DIRECTIVE_ERROR = "Directive field is empty"
DECODE_ERROR = "Unable to process json input"
CONNECTION_FAILURE_ERROR = "No connection to the rhc client"

VerifyInput = Callable[[Request, "_ConnectionID"], None]


@dataclass
class _MessageRequest:
    account: str = field(default="", metadata={"required": True})
    recipient: str = field(default="", metadata={"required": True})
    payload: Any = None
    metadata: Any = None
    directive: str = field(default="", metadata={"required": True})


@dataclass
class _ConnectionID:
    account: str = field(default="", metadata={"required": True})
    node_id: str = field(default="", metadata={"required": True})


def connection_failure_response() -> Response:
    """The response sent when the client's connection is not available."""
    log.info(CONNECTION_FAILURE_ERROR)
    return error_response(CONNECTION_FAILURE_ERROR, 404, CONNECTION_FAILURE_ERROR)


def get_connection_status(
    request: Request,
    tenant_translator: Any,
    get_connection_by_client_id: Callable[[str, str], ConnectorClientState],
    verify_input: VerifyInput,
) -> Response:
    """Answer a connection-status request.

    ``verify_input`` raises ``PermissionError`` to reject the request.
    """
    try:
        conn_id = decode_json(request.get_data(), _ConnectionID)
    except ValueError as exc:
        return error_response(DECODE_ERROR, 400, str(exc))

    try:
        verify_input(request, conn_id)
    except PermissionError as exc:
        return error_response(str(exc), 403, str(exc))

    log.info("Checking connection status for account:%s - node id:%s", conn_id.account, conn_id.node_id)

    try:
        org_id = tenant_translator.ean_to_org_id(conn_id.account)
    except Exception as exc:
        log.error("Unable to translate account (%s) to org_id: %s", conn_id.account, exc)
        return error_response("Unable to translate account to org_id", 400, str(exc))

    log.info("Translated account %s to org_id %s", conn_id.account, org_id)

    status: dict[str, Any] = {"status": DISCONNECTED_STATUS}
    try:
        state = get_connection_by_client_id(org_id, conn_id.node_id)
    except Exception:
        state = None
    if state is not None:
        status["status"] = CONNECTED_STATUS
        for key, value in (
            ("dispatchers", state.dispatchers),
            ("canonical_facts", state.canonical_facts),
            ("tags", state.tags),
        ):
            if value is not None:
                status[key] = value

    log.info(
        "Connection status for account:%s - node id:%s => %s",
        conn_id.account, conn_id.node_id, status["status"],
    )
    return json_response(200, status)


class MessageReceiver:
    """Sends messages to connected clients and reports their status."""

    def __init__(
        self,
        get_connection_by_client_id: Callable[[str, str], ConnectorClientState],
        tenant_translator: Any,
        proxy_factory: Any,
        router: Router,
        url_prefix: str,
    ) -> None:
        self.get_connection_by_client_id = get_connection_by_client_id
        self.tenant_translator = tenant_translator
        self.proxy_factory = proxy_factory
        self.router = router
        self.url_prefix = url_prefix

    def routes(self) -> None:
        self.router.add_route(self.url_prefix + "/v1/message", self._handle_job, ["POST"], secured=True)
        self.router.add_route(
            self.url_prefix + "/v1/connection_status", self._handle_connection_status, ["POST"], secured=True
        )

    def _handle_job(self, request: Request) -> Response:
        principal = get_principal(request)

        try:
            message = decode_json(request.get_data(), _MessageRequest)
        except ValueError as exc:
            log.debug("%s: %s", DECODE_ERROR, exc)
            return error_response(DECODE_ERROR, 400, str(exc))

        if principal.account != message.account:
            log.debug(ACCOUNT_MISMATCH_ERROR)
            return error_response(ACCOUNT_MISMATCH_ERROR, 403, ACCOUNT_MISMATCH_ERROR)

        if not message.directive.strip():
            log.debug(EMPTY_DIRECTIVE_ERROR)
            return error_response(EMPTY_DIRECTIVE_ERROR, 400, EMPTY_DIRECTIVE_ERROR)

        try:
            client = create_connector_client_proxy(
                self.tenant_translator,
                self.get_connection_by_client_id,
                self.proxy_factory,
                message.account,
                message.recipient,
            )
        except Exception as exc:
            log.error("Unable to create proxy for connection (%s:%s): %s", message.account, message.recipient, exc)
            return connection_failure_response()

        log.info("Sending a message to %s (directive %s)", message.recipient, message.directive)

        try:
            job_id = client.send_message(message.directive, message.metadata, message.payload)
        except DisconnectedNodeError:
            return connection_failure_response()
        except Exception as exc:
            title = "Error passing message to rhc client"
            log.info("%s: %s", title, exc)
            return error_response(title, 500, str(exc))

        log.info("Message sent: %s", job_id)
        return json_response(201, {"id": str(job_id)})

    def _handle_connection_status(self, request: Request) -> Response:
        return get_connection_status(
            request, self.tenant_translator, self.get_connection_by_client_id, self._verify_account
        )

    @staticmethod
    def _verify_account(request: Request, conn_id: _ConnectionID) -> None:
        if get_principal(request).account != conn_id.account:
            raise PermissionError(ACCOUNT_MISMATCH_ERROR)