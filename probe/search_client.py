import logging
from typing import Any, Dict, Optional, Tuple

import requests

from probe.evaluator import QueryResult

logger = logging.getLogger(__name__)

SUPPORTED_BACKENDS = ("solr", "elasticsearch")


class SearchClientError(Exception):
    """Raised for anything that stops a search from producing a QueryResult
    (bad connection parameters, transport failures, unexpected payloads)."""


def validate_connection(host: str, port: int, core: str) -> None:
    if not host or not core:
        raise SearchClientError("Invalid connection parameters")
    try:
        port_ok = 0 < int(port) < 65536
    except (TypeError, ValueError):
        port_ok = False
    if not port_ok:
        raise SearchClientError("Invalid connection parameters")


class SolrClient:
    """Minimal Solr client for the ``/select`` request handler.

    Parameters
    ----------
    host, port, core : str, int, str
        Addressing of the core; requests go to
        ``{scheme}://{host}:{port}/solr/{core}/select``.
    timeout : float
        Per request timeout in seconds.
    basic_auth : (user, password) | None
        Optional HTTP basic credentials.
    session : requests.Session | None
        Pre-built session (mainly for tests / dependency injection).
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8080,
        core: str = "",
        scheme: str = "http",
        timeout: float = 10,
        basic_auth: Optional[Tuple[str, str]] = None,
        session: Optional[requests.Session] = None,
    ):
        validate_connection(host, port, core)
        self.base_url = f"{scheme}://{host}:{int(port)}/solr/{core}"
        self.timeout = timeout
        self.session = session or requests.Session()
        if basic_auth:
            self.session.auth = basic_auth

    @property
    def select_url(self) -> str:
        return f"{self.base_url}/select"

    def search(self, query: str, sort_key: str, rows: int = 1) -> QueryResult:
        params: Dict[str, Any] = {"q": query, "rows": rows, "wt": "json"}
        if sort_key:
            params["sort"] = f"{sort_key} desc"
        logger.debug("Solr select url=%s params=%s", self.select_url, params)
        try:
            resp = self.session.get(self.select_url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except requests.RequestException as exc:
            raise SearchClientError(f"Solr request failed: {exc}") from exc
        except ValueError as exc:
            raise SearchClientError(f"Solr returned a non-JSON body: {exc}") from exc
        return self.parse_response(payload)

    @staticmethod
    def parse_response(payload: Dict[str, Any]) -> QueryResult:
        """Build a QueryResult from a decoded ``wt=json`` select response."""
        try:
            header = payload["responseHeader"]
            response = payload["response"]
            return QueryResult(
                status=int(header["status"]),
                num_found=int(response["numFound"]),
                documents=tuple(response.get("docs") or ()),
                qtime_ms=int(header.get("QTime", 0)),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise SearchClientError(f"Malformed Solr response: {exc!r}") from exc

    def close(self) -> None:
        """Close the HTTP session (best-effort)."""
        try:
            self.session.close()
        except Exception as exc:
            logger.debug("Ignoring error while closing Solr session: %s", exc)


def build_client(backend: str = "solr", **options: Any):
    """Return a search client for ``backend`` ('solr' or 'elasticsearch')."""
    backend = (backend or "solr").lower()
    if backend == "solr":
        return SolrClient(**options)
    if backend == "elasticsearch":
        # Local import keeps the elasticsearch package off the Solr path
        from probe.elasticsearch_client import SearchElasticsearchClient

        return SearchElasticsearchClient(**options)
    raise SearchClientError(
        f"Unknown backend {backend!r} (expected one of {', '.join(SUPPORTED_BACKENDS)})"
    )
