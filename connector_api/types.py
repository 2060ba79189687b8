"""Domain values shared by the HTTP handlers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass
class ConnectorClientState:
    """What is known about one connected client."""

    account: str = ""
    org_id: str = ""
    client_id: str = ""
    canonical_facts: Any = None
    dispatchers: Any = None
    tags: Any = None


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of a request."""

    account: str = ""
    org_id: str = ""
    identity_type: str = ""

    @classmethod
    def from_identity(cls, identity: Mapping[str, Any]) -> "Principal":
        """Build a principal from a decoded identity document."""
        inner = identity.get("identity", identity) or {}
        internal = inner.get("internal") or {}
        org_id = inner.get("org_id") or internal.get("org_id") or ""
        return cls(
            account=str(inner.get("account_number") or ""),
            org_id=str(org_id),
            identity_type=str(inner.get("type") or ""),
        )


class ConnectionNotFoundError(LookupError):
    """No connection exists for the requested client."""


class DisconnectedNodeError(RuntimeError):
    """The client went away before the message could be delivered."""