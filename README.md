# connector_api

A WSGI application layer for a service that keeps track of client nodes
connected to it and relays messages to them. It exposes three REST
interfaces plus monitoring and API-spec endpoints, all served through a
small werkzeug-based `Router` (`connector_api.web`).

## Endpoints

**Message receiver (v1)** — `connector_api.message_receiver.MessageReceiver`

- `POST {prefix}/v1/message` — send a directive (with optional `payload`
  and `metadata`) to a `recipient` node. The `account` in the body must
  match the caller's account (`403` otherwise); a blank directive gives
  `400`. Answers `201` with `{"id": ...}`, or `404` when no connection to
  the node is available.
- `POST {prefix}/v1/connection_status` — body `{"account", "node_id"}`;
  reports `connected` or `disconnected`, with the node's `dispatchers`,
  `canonical_facts` and `tags` when connected. The account must match the
  caller's.

**Management interface (v1)** — `connector_api.management.ManagementServer`,
under `{prefix}/v1/connection`

- `GET ""` — open connections grouped by account, paginated.
- `GET /{account}` (digits only) — connections for one account, paginated.
- `POST /status` — as above, without the account check.
- `POST /ping` — `{"status": "connected"|"disconnected", "payload": null}`;
  a failing ping gives `400`.
- `POST /disconnect` — body `{"account", "node_id", "message"}`.
- `POST /reconnect` — body `{"account", "node_id", "delay", "message"}`;
  a negative delay gives `400`.

Disconnect and reconnect answer `400` when the node has no connection.

**Connection mediator (v2)** — `connector_api.mediator_v2.ConnectionMediatorV2`,
keyed by the caller's org id

- `POST {prefix}/v2/connections/{id}/message`
- `GET  {prefix}/v2/connections/{id}/status`
- `GET  {prefix}/v2/connections` — paginated list for the caller's org.

`connection_response` and `connection_status_response` build the v2
connection descriptions, leaving out empty fields.

**Operational endpoints**

- `connector_api.monitoring.MonitoringServer`: `GET /metrics`, `/liveness`,
  `/readiness`, each answering `200`.
- `connector_api.spec.ApiSpecServer`: `GET {prefix}/openapi.json`, served
  from a file on disk (`404` if the file cannot be read).

Unknown paths give `404`; a known path with the wrong method gives `405`.

## Pagination

List endpoints accept `offset` (default `0`) and `limit` (default `1000`)
query parameters; non-numeric or negative values give `400`. Responses have
the shape:

```json
{
  "meta": {"count": 11},
  "links": {
    "first": "/api/cloud-connector/v1/connection?limit=5&offset=0",
    "last":  "/api/cloud-connector/v1/connection?limit=5&offset=10",
    "next":  "/api/cloud-connector/v1/connection?limit=5&offset=5"
  },
  "data": []
}
```

`build_paginated_response`, `build_navigation_links`, `build_navigation_link`
and `calculate_offset_of_last_page` in `connector_api.pagination` produce
this structure and can be used on their own. Empty links are left out, and
when the total is zero no links are emitted.

## Wiring an application

Each server takes the lookups and collaborators it needs as plain callables
or objects, plus a `Router` and a URL prefix, and registers its endpoints
when `routes()` is called:

```python
from connector_api.web import Router
from connector_api.monitoring import MonitoringServer
from connector_api.spec import ApiSpecServer
from connector_api.management import ManagementServer

router = Router(authenticate)          # your request-authentication callable

MonitoringServer(router).routes()
ApiSpecServer(router, "/api/cloud-connector", "api.spec.json").routes()
ManagementServer(
    get_connection_by_client_id,
    get_connections_by_org_id,
    get_all_connections,
    tenant_translator,
    proxy_factory,
    router,
    "/api/cloud-connector",
).routes()

application = router                   # any WSGI server can host this
```

The collaborators are:

- `get_connection_by_client_id(org_id, client_id)` — returns a
  `ConnectorClientState`, raising (ideally `ConnectionNotFoundError`) when
  the node is unknown;
- `get_connections_by_org_id(org_id, offset, limit)` — returns
  `(mapping of client id to state, total)`;
- `get_all_connections(offset, limit)` — returns
  `(mapping of account to {client id: state}, total)`;
- a tenant translator with `ean_to_org_id(account)`;
- a proxy factory with `create_proxy(org_id, account, client_id,
  canonical_facts, dispatchers, tags)`, whose proxies offer
  `send_message(directive, metadata, payload)`, `ping()`,
  `disconnect(message)` and `reconnect(message, delay)`. `send_message`
  may raise `DisconnectedNodeError` when the node has gone away.

`connector_api.clients.create_connector_client_proxy` chains the translator,
lookup and factory as the v1 handlers do.

Secured routes run the `authenticate` callable given to the `Router`; it
returns a `Principal` or raises `ApiError` to reject the request. Without an
`authenticate` callable, secured routes answer `401`. Handlers read the
caller with `get_principal(request)`. `Principal.from_identity` builds a
principal from a decoded identity document (`account_number`, `type`, and
`org_id` either directly or under `internal`).

## Errors

Failures are answered with a JSON body of the form
`{"title": ..., "status": ..., "detail": ...}` and the matching HTTP status.
Request bodies must hold one JSON object with all required fields present
and non-empty; bodies over 1 MiB are rejected as malformed.

## What this package does not do

- It does not authenticate requests itself: identity-header decoding and
  pre-shared-key checks must be supplied as the `authenticate` callable.
- It stores no connections and holds no link to client nodes; lookups,
  tenant translation and client proxies are supplied by the caller.
- `/metrics` answers a fixed `up 1` line; no request metrics are collected,
  and no access logging or profiling endpoints are provided.
- It has no command-line entry point; host `Router` in a WSGI server.