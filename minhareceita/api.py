"""HTTP API serving the JSON record of each CNPJ."""

from __future__ import annotations

import datetime
import json
import logging
import os
from dataclasses import dataclass, field
from http import HTTPStatus
from wsgiref.simple_server import make_server

from minhareceita.cnpj import is_valid, mask, unmask

logger = logging.getLogger(__name__)

CACHE_MAX_AGE = datetime.timedelta(hours=24)
CACHE_CONTROL = f"max-age={int(CACHE_MAX_AGE.total_seconds())}"
DEFAULT_PORT = "8000"
DEFAULT_DOCS_URL = "https://docs.example.com"

_ONLY_GET = "Essa URL aceita apenas o método GET."
_JSON_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)


@dataclass
class Response:
    """Status, body and headers of an HTTP response."""

    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)


def _message(status: int, message: str, headers: dict | None = None) -> Response:
    headers = dict(headers or {})
    if not message:
        return Response(status, b"", headers)
    text = json.dumps({"message": message}, ensure_ascii=False, separators=(",", ":"))
    headers["Content-Type"] = "application/json"
    return Response(status, text.translate(_JSON_ESCAPES).encode("utf-8"), headers)


def _header(headers, name: str) -> str:
    for key, value in (headers or {}).items():
        if key.lower() == name.lower():
            return value
    return ""


class Api:
    """Request handlers backed by a database with ``get_company`` and ``meta_read``."""

    def __init__(self, db, host=None):
        self.db = db
        self.host = host or None

    def company_handler(self, method, path) -> Response:
        """Serve the record of the CNPJ in the path."""
        headers = {
            "Cache-Control": CACHE_CONTROL,
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "POST, OPTIONS",
            "Access-Control-Allow-Headers": (
                "Accept, Content-Type, Content-Length, Accept-Encoding"
            ),
        }
        if method == "OPTIONS":
            return Response(HTTPStatus.OK, b"", headers)
        if method != "GET":
            return _message(HTTPStatus.METHOD_NOT_ALLOWED, _ONLY_GET, headers)
        if path == "/":
            headers["Location"] = os.environ.get("DOCS_URL", DEFAULT_DOCS_URL)
            return Response(HTTPStatus.FOUND, b"", headers)
        if not is_valid(path):
            return _message(
                HTTPStatus.BAD_REQUEST, f"CNPJ {mask(path[1:])} inválido.", headers
            )
        try:
            data = self.db.get_company(unmask(path))
        except Exception as error:
            logger.debug("could not get %s: %s", path, error)
            return _message(
                HTTPStatus.NOT_FOUND, f"CNPJ {mask(path)} não encontrado.", headers
            )
        headers["Content-Type"] = "application/json"
        return Response(HTTPStatus.OK, data.encode("utf-8"), headers)

    def updated_handler(self, method) -> Response:
        """Serve the date the data was extracted by the Federal Revenue."""
        if method != "GET":
            return _message(HTTPStatus.METHOD_NOT_ALLOWED, _ONLY_GET)
        try:
            value = self.db.meta_read("updated-at")
        except Exception as error:
            logger.error("could not read the updated at date: %s", error)
            return _message(
                HTTPStatus.INTERNAL_SERVER_ERROR, "Erro buscando data de atualização."
            )
        if not value:
            return Response(HTTPStatus.INTERNAL_SERVER_ERROR)
        return _message(
            HTTPStatus.OK,
            f"{value} é a data de extração dos dados pela Receita Federal.",
            {"Cache-Control": CACHE_CONTROL},
        )

    def health_handler(self, method) -> Response:
        """Answer health checks."""
        if method != "GET":
            return _message(HTTPStatus.METHOD_NOT_ALLOWED, _ONLY_GET)
        return Response(HTTPStatus.OK)

    def handle(self, method, path, headers=None) -> Response:
        """Route a request, refusing hosts other than the allowed one, if set."""
        if self.host is not None:
            given = _header(headers, "Host")
            if given != self.host:
                logger.warning("Host %s not allowed", given)
                return Response(HTTPStatus.IM_A_TEAPOT)
        if path == "/updated":
            return self.updated_handler(method)
        if path == "/healthz":
            return self.health_handler(method)
        return self.company_handler(method, path)

    def __call__(self, environ, start_response):
        response = self.handle(
            environ.get("REQUEST_METHOD", "GET"),
            environ.get("PATH_INFO") or "/",
            {"Host": environ.get("HTTP_HOST", "")},
        )
        status = HTTPStatus(response.status)
        headers = list(response.headers.items())
        headers.append(("Content-Length", str(len(response.body))))
        start_response(f"{status.value} {status.phrase}", headers)
        return [response.body]


def serve(db, port=DEFAULT_PORT) -> None:
    """Serve the API on all interfaces until interrupted."""
    port = str(port).removeprefix(":")
    app = Api(db, os.environ.get("ALLOWED_HOST") or None)
    with make_server("0.0.0.0", int(port), app) as server:
        logger.info("Serving at http://0.0.0.0:%s", port)
        server.serve_forever()