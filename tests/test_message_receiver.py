import base64
import json
import uuid

import pytest
from werkzeug.test import Client

from connector_api.message_receiver import (
    ACCOUNT_MISMATCH_ERROR,
    EMPTY_DIRECTIVE_ERROR,
    MessageReceiver,
    connection_failure_response,
)
from connector_api.types import (
    ConnectionNotFoundError,
    ConnectorClientState,
    DisconnectedNodeError,
    Principal,
)
from connector_api.web import ApiError, Router

IDENTITY_HEADER = "x-rh-identity"
PSK_CLIENT_HEADER = "x-rh-cloud-connector-client-id"
PSK_ACCOUNT_HEADER = "x-rh-cloud-connector-account"
PSK_HEADER = "x-rh-cloud-connector-psk"
BASE = "/api/cloud-connector"
MESSAGE_ENDPOINT = BASE + "/v1/message"
STATUS_ENDPOINT = BASE + "/v1/connection_status"
CREDENTIALS = {"test_client_1": "secret"}


def build_identity_header(account, identity_type="Associate"):
    doc = {"identity": {"account_number": account, "type": identity_type, "internal": {"org_id": "1979710"}}}
    return base64.b64encode(json.dumps(doc).encode()).decode()


def authenticate(request):
    header = request.headers.get(IDENTITY_HEADER)
    if header:
        return Principal.from_identity(json.loads(base64.b64decode(header)))
    client_name = request.headers.get(PSK_CLIENT_HEADER)
    if client_name:
        expected = CREDENTIALS.get(client_name)
        if expected is None or expected != request.headers.get(PSK_HEADER):
            raise ApiError("Unauthorized", 401, "Unauthorized")
        return Principal(account=request.headers.get(PSK_ACCOUNT_HEADER, ""))
    raise ApiError("Unauthorized", 401, "Unauthorized")


class Translator:
    def __init__(self, mapping):
        self.mapping = mapping

    def ean_to_org_id(self, account):
        for org_id, acct in self.mapping.items():
            if acct == account:
                return org_id
        raise LookupError(f"no org_id for {account}")


class MockClient:
    def __init__(self, mode):
        self.mode = mode
        self.sent = []

    def send_message(self, directive, metadata, payload):
        if self.mode == "error":
            raise RuntimeError("ImaError")
        if self.mode == "disconnected":
            raise DisconnectedNodeError("gone")
        self.sent.append((directive, metadata, payload))
        return uuid.uuid4()


class ProxyFactory:
    def __init__(self, mode="ok"):
        self.mode = mode
        self.clients = []

    def create_proxy(self, org_id, account, client_id, canonical_facts, dispatchers, tags):
        client = MockClient(self.mode)
        self.clients.append(client)
        return client


STATE = ConnectorClientState(
    account="1234",
    org_id="1979710",
    client_id="345",
    canonical_facts={"foo": "bar"},
    tags={"tag1": "value1", "tag2": "value2"},
)


def get_connection(org_id, client_id):
    if org_id == STATE.org_id:
        return STATE
    raise ConnectionNotFoundError("connection not found!!")


def make_client(mode="ok"):
    router = Router(authenticate)
    factory = ProxyFactory(mode)
    translator = Translator({"1979710": "1234", "non-matching-org-id-1": "1234-not-here"})
    MessageReceiver(get_connection, translator, factory, router, BASE).routes()
    return Client(router), factory


def body_of(resp):
    return json.loads(resp.get_data(as_text=True))


def identity(account="1234"):
    return {IDENTITY_HEADER: build_identity_header(account)}


def job(account="1234", recipient="345", directive="fred:flintstone", **extra):
    doc = {"account": account, "recipient": recipient, "payload": ["678"], "directive": directive}
    doc.update(extra)
    return json.dumps(doc)


def test_send_job_to_connected_customer():
    client, factory = make_client()
    resp = client.post(MESSAGE_ENDPOINT, data=job(), headers=identity())
    assert resp.status_code == 201
    result = body_of(resp)
    assert "id" in result
    assert uuid.UUID(result["id"])
    assert factory.clients[0].sent == [("fred:flintstone", None, ["678"])]


def test_send_job_client_error_gives_500():
    client, _ = make_client("error")
    resp = client.post(MESSAGE_ENDPOINT, data=job(recipient="error-client"), headers=identity())
    assert resp.status_code == 500
    result = body_of(resp)
    assert set(result) == {"status", "title", "detail"}
    assert result["detail"] == "ImaError"


def test_send_job_disconnected_node_gives_404():
    client, _ = make_client("disconnected")
    resp = client.post(MESSAGE_ENDPOINT, data=job(), headers=identity())
    assert resp.status_code == 404


def test_send_job_to_disconnected_customer():
    client, _ = make_client()
    resp = client.post(MESSAGE_ENDPOINT, data=job(account="1234-not-here"), headers=identity("1234-not-here"))
    assert resp.status_code == 404
    assert body_of(resp)["detail"] == "No connection to the rhc client"


@pytest.mark.parametrize(
    "body",
    [
        job(account=""),
        '{"account" = "1234-bad-json", "recipient": "345", "payload": ["678"], "directive": "fred:flintstone}',
        "account: 1234-string-value",
        '{"account": "1234", "recipient": "345", "payload": ["678"]}',
    ],
)
def test_invalid_job_bodies_are_rejected(body):
    client, _ = make_client()
    resp = client.post(MESSAGE_ENDPOINT, data=body, headers=identity())
    assert resp.status_code == 400


def test_unknown_fields_are_allowed():
    client, _ = make_client()
    resp = client.post(MESSAGE_ENDPOINT, data=job(extra="field"), headers=identity())
    assert resp.status_code == 201


def test_job_to_wrong_customer_is_forbidden():
    client, _ = make_client()
    resp = client.post(MESSAGE_ENDPOINT, data=job(), headers=identity("4321"))
    assert resp.status_code == 403
    assert body_of(resp)["detail"] == ACCOUNT_MISMATCH_ERROR


def test_empty_directive_is_rejected():
    client, _ = make_client()
    resp = client.post(MESSAGE_ENDPOINT, data=job(directive="   "), headers=identity())
    assert resp.status_code == 400
    assert body_of(resp)["detail"] == EMPTY_DIRECTIVE_ERROR


def test_job_without_payload_is_allowed():
    client, factory = make_client()
    body = json.dumps({"account": "1234", "recipient": "345", "directive": "fred:flintstone"})
    resp = client.post(MESSAGE_ENDPOINT, data=body, headers=identity())
    assert resp.status_code == 201
    assert factory.clients[0].sent == [("fred:flintstone", None, None)]


def test_job_without_credentials_is_unauthorized():
    client, _ = make_client()
    resp = client.post(MESSAGE_ENDPOINT, data=job())
    assert resp.status_code == 401


def psk_headers(account, key="secret", client_name="test_client_1"):
    return {PSK_CLIENT_HEADER: client_name, PSK_ACCOUNT_HEADER: account, PSK_HEADER: key}


def test_job_with_valid_psk():
    client, _ = make_client()
    resp = client.post(MESSAGE_ENDPOINT, data=job(), headers=psk_headers("1234"))
    assert resp.status_code == 201
    assert "id" in body_of(resp)


def test_job_with_valid_psk_wrong_account():
    client, _ = make_client()
    resp = client.post(MESSAGE_ENDPOINT, data=job(), headers=psk_headers("4321"))
    assert resp.status_code == 403
    assert body_of(resp)["detail"] == ACCOUNT_MISMATCH_ERROR


def test_job_with_invalid_psk():
    client, _ = make_client()
    resp = client.post(MESSAGE_ENDPOINT, data=job(), headers=psk_headers("0000001", key="placeholder"))
    assert resp.status_code == 401


def test_job_with_unknown_psk_client():
    client, _ = make_client()
    resp = client.post(MESSAGE_ENDPOINT, data=job(), headers=psk_headers("0000001", client_name="test_client_nil"))
    assert resp.status_code == 401


def status_body(account="1234", node_id="345"):
    return json.dumps({"account": account, "node_id": node_id})


def test_status_account_mismatch_with_identity():
    client, _ = make_client()
    resp = client.post(STATUS_ENDPOINT, data=status_body(), headers=identity("4321"))
    assert resp.status_code == 403
    assert body_of(resp)["detail"] == ACCOUNT_MISMATCH_ERROR


def test_status_returns_canonical_facts_and_tags():
    client, _ = make_client()
    resp = client.post(STATUS_ENDPOINT, data=status_body(), headers=identity())
    assert resp.status_code == 200
    result = body_of(resp)
    assert result["status"] == "connected"
    assert result["canonical_facts"]["foo"] == "bar"
    assert result["tags"]["tag1"] == "value1"
    assert "dispatchers" not in result


def test_status_account_mismatch_with_psk():
    client, _ = make_client()
    resp = client.post(STATUS_ENDPOINT, data=status_body(), headers=psk_headers("0000001"))
    assert resp.status_code == 403
    assert body_of(resp)["detail"] == ACCOUNT_MISMATCH_ERROR


def test_status_of_disconnected_customer():
    client, _ = make_client()
    resp = client.post(STATUS_ENDPOINT, data=status_body("1234-not-here"), headers=identity("1234-not-here"))
    assert resp.status_code == 200
    assert body_of(resp) == {"status": "disconnected"}


def test_status_untranslatable_account():
    client, _ = make_client()
    resp = client.post(STATUS_ENDPOINT, data=status_body("9999"), headers=identity("9999"))
    assert resp.status_code == 400
    assert body_of(resp)["title"] == "Unable to translate account to org_id"


def test_status_missing_node_id():
    client, _ = make_client()
    resp = client.post(STATUS_ENDPOINT, data=status_body(node_id=""), headers=identity())
    assert resp.status_code == 400
    assert body_of(resp)["detail"] == "Request body is missing required fields"


def test_connection_failure_response():
    resp = connection_failure_response()
    assert resp.status_code == 404
    assert body_of(resp) == {
        "title": "No connection to the rhc client",
        "status": 404,
        "detail": "No connection to the rhc client",
    }