"""Resolving an account and client id to a connector client proxy."""

from __future__ import annotations

import logging
from typing import Any, Callable

from .types import ConnectorClientState

log = logging.getLogger(__name__)


def create_connector_client_proxy(
    tenant_translator: Any,
    get_connection_by_client_id: Callable[[str, str], ConnectorClientState],
    proxy_factory: Any,
    account: str,
    client_id: str,
) -> Any:
    """Translate the account to an org id, find the connection and build a proxy.

    Errors from any step propagate to the caller.
    """
    try:
        org_id = tenant_translator.ean_to_org_id(account)
    except Exception:
        log.error("Unable to translate account (%s) to org_id", account)
        raise
    log.info("Translated account %s to org_id %s", account, org_id)

    try:
        state = get_connection_by_client_id(org_id, client_id)
    except Exception:
        log.error("Unable to locate connection (%s:%s)", org_id, client_id)
        raise

    try:
        return proxy_factory.create_proxy(
            state.org_id, state.account, state.client_id,
            state.canonical_facts, state.dispatchers, state.tags,
        )
    except Exception:
        log.error("Unable to create proxy for connection (%s:%s)", org_id, client_id)
        raise