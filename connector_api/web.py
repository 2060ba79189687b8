"""Request decoding, JSON responses and a small routing layer."""

from __future__ import annotations

import dataclasses
import json
import logging
import re
from typing import Any, Callable, Iterable, Mapping

from werkzeug.exceptions import MethodNotAllowed, NotFound
from werkzeug.routing import Map, Rule
from werkzeug.wrappers import Request, Response

from .types import Principal

log = logging.getLogger(__name__)

MAX_BODY_BYTES = 1048576
PRINCIPAL_KEY = "connector_api.principal"
_INT_RE = re.compile(r"[+-]?[0-9]+")


class ApiError(Exception):
    """An error that becomes a JSON error response."""

    def __init__(self, title: str, status: int, detail: str) -> None:
        super().__init__(detail)
        self.title = title
        self.status = status
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "status": self.status, "detail": self.detail}


def _default(obj: Any) -> Any:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if dataclasses.is_dataclass(obj):
        return dataclasses.asdict(obj)
    raise TypeError(f"cannot encode {type(obj).__name__}")


def json_response(status: int, payload: Any) -> Response:
    """Return a JSON response; a ``None`` payload gives an empty body."""
    content_type = "application/json; charset=UTF-8"
    if payload is None:
        return Response(b"", status=status, content_type=content_type)
    try:
        body = json.dumps(payload, default=_default) + "\n"
    except (TypeError, ValueError):
        log.error("Unable to encode payload!")
        return Response("Unable to encode payload!\n", status=422, content_type="text/plain; charset=utf-8")
    return Response(body, status=status, content_type=content_type)


def error_response(title: str, status: int, detail: str) -> Response:
    return json_response(status, ApiError(title, status, detail).to_dict())


def _is_zero(value: Any) -> bool:
    return value is None or value == "" or (value == 0 and not isinstance(value, bool)) or value is False


def _field_kind(spec: dataclasses.Field) -> type | None:
    """The plain scalar type of a dataclass field, from its annotation."""
    annotation = spec.type
    if annotation is str or annotation == "str":
        return str
    if annotation is int or annotation == "int":
        return int
    return None


def decode_json(body: bytes | str, model: type) -> Any:
    """Decode one JSON object from ``body`` into the dataclass ``model``.

    Fields whose metadata has ``required`` must be present and non-empty.
    Raises ``ValueError`` with a client-facing message.
    """
    if isinstance(body, bytes):
        if len(body) > MAX_BODY_BYTES:
            raise ValueError("Request body includes malformed json")
        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError:
            raise ValueError("Request body includes malformed json") from None
    else:
        text = body
    stripped = text.lstrip()
    try:
        data, end = json.JSONDecoder().raw_decode(stripped)
    except json.JSONDecodeError:
        raise ValueError("Request body includes malformed json") from None
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Request body includes malformed json")

    values: dict[str, Any] = {}
    for spec in dataclasses.fields(model):
        key = spec.metadata.get("json", spec.name)
        if key not in data or data[key] is None:
            continue
        value = data[key]
        kind = _field_kind(spec)
        if kind is str and not isinstance(value, str):
            raise ValueError("Request body includes malformed json")
        if kind is int and (isinstance(value, bool) or not isinstance(value, int)):
            raise ValueError("Request body includes malformed json")
        values[spec.name] = value
    instance = model(**values)

    missing = [
        spec.name for spec in dataclasses.fields(model)
        if spec.metadata.get("required") and _is_zero(getattr(instance, spec.name))
    ]
    if missing:
        log.info("missing required fields: %s", ", ".join(missing))
        raise ValueError("Request body is missing required fields")
    rest = stripped[end:].lstrip()
    if rest and rest[0] not in "]}":
        raise ValueError("Request body must only contain one json object")
    return instance


def get_int_from_query_params(args: Mapping[str, str], name: str, default: int) -> int:
    value = args.get(name, "")
    if value == "":
        return default
    if not _INT_RE.fullmatch(value):
        raise ValueError(f'strconv.Atoi: parsing "{value}": invalid syntax')
    return int(value)


def get_limit_from_query_params(args: Mapping[str, str]) -> int:
    try:
        limit = get_int_from_query_params(args, "limit", 1000)
    except ValueError as exc:
        raise ValueError(f"limit: {exc}") from None
    if limit < 0:
        raise ValueError("limit: must be > 0")
    return limit


def get_offset_from_query_params(args: Mapping[str, str]) -> int:
    try:
        offset = get_int_from_query_params(args, "offset", 0)
    except ValueError as exc:
        raise ValueError(f"offset: {exc}") from None
    if offset < 0:
        raise ValueError("offset: must be >= 0")
    return offset


def get_offset_and_limit_from_query_params(args: Mapping[str, str]) -> tuple[int, int]:
    limit = get_limit_from_query_params(args)
    offset = get_offset_from_query_params(args)
    return offset, limit


def get_principal(request: Request) -> Principal:
    """The principal stored by authentication, or an empty one."""
    return request.environ.get(PRINCIPAL_KEY) or Principal()


Endpoint = Callable[..., Response]


class Router:
    """A WSGI application dispatching requests to registered endpoints.

    ``authenticate`` takes a request and returns a ``Principal`` or raises
    ``ApiError``; it guards routes added with ``secured=True``.
    """

    def __init__(self, authenticate: Callable[[Request], Principal] | None = None) -> None:
        self.authenticate = authenticate
        self.url_map = Map(strict_slashes=False)
        self._endpoints: dict[str, tuple[Endpoint, bool]] = {}

    def add_route(self, rule: str, endpoint: Endpoint, methods: Iterable[str], secured: bool = False) -> None:
        name = f"route{len(self._endpoints)}"
        self._endpoints[name] = (endpoint, secured)
        self.url_map.add(Rule(rule or "/", endpoint=name, methods=list(methods)))

    def dispatch(self, request: Request) -> Response:
        adapter = self.url_map.bind_to_environ(request.environ)
        try:
            name, values = adapter.match()
        except MethodNotAllowed:
            return Response(b"", status=405)
        except NotFound:
            return Response(b"404 page not found\n", status=404, content_type="text/plain; charset=utf-8")
        endpoint, secured = self._endpoints[name]
        if secured:
            if self.authenticate is None:
                return error_response("Unauthorized", 401, "Unauthorized")
            try:
                principal = self.authenticate(request)
            except ApiError as exc:
                return json_response(exc.status, exc.to_dict())
            request.environ[PRINCIPAL_KEY] = principal
        return endpoint(request, **values)

    def wsgi_app(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        request = Request(environ, max_content_length=None)
        return self.dispatch(request)(environ, start_response)

    def __call__(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        return self.wsgi_app(environ, start_response)