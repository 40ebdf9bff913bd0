import logging
from typing import Any, Dict, Optional, Tuple

# Import the class symbol directly so tests can monkeypatch
from elasticsearch import Elasticsearch  # type: ignore

from probe.evaluator import QueryResult
from probe.search_client import SearchClientError, validate_connection

logger = logging.getLogger(__name__)


class SearchElasticsearchClient:
    """Elasticsearch backend for the probe.

    The probe's ``core`` maps onto an index (or alias / pattern). One
    ``query_string`` search sorted on the sort key is all this does.

    Parameters
    ----------
    host, port, core : str, int, str
        Cluster address and index name.
    connection : dict | None
        Optional extra connection arguments passed through to the client.
        Supported keys:
        {
          "api_key": ("id", "key"),
          "bearer_auth": "token",
          "verify_certs": True,
          "ca_certs": "/path/to/ca.pem",
          "ssl_show_warn": False
        }
    es_client : Elasticsearch | None
        Pre-instantiated low-level client (mainly for tests / dependency injection).
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 9200,
        core: str = "",
        scheme: str = "http",
        timeout: float = 10,
        basic_auth: Optional[Tuple[str, str]] = None,
        connection: Optional[Dict[str, Any]] = None,
        es_client: Optional[Elasticsearch] = None,
    ):
        validate_connection(host, port, core)
        self.hosts = [f"{scheme}://{host}:{int(port)}"]
        self.index_name = core
        self.timeout = timeout

        # Extract optional auth/TLS related parameters (whitelist for clarity)
        conn = connection or {}
        self._extra_conn_args: Dict[str, Any] = {}
        for key in ("api_key", "bearer_auth", "verify_certs", "ca_certs", "ssl_show_warn"):
            if key in conn:
                self._extra_conn_args[key] = conn[key]
        if basic_auth:
            self._extra_conn_args["basic_auth"] = tuple(basic_auth)

        self.es: Optional[Elasticsearch] = es_client
        if self.es is None:
            self._connect()

    def _connect(self) -> None:
        """Build the low-level client. No request is sent until search()."""
        try:
            self.es = Elasticsearch(
                self.hosts, request_timeout=self.timeout, **self._extra_conn_args
            )
        except Exception as exc:
            raise SearchClientError(
                f"Cannot create Elasticsearch client for {self.hosts}: {exc}"
            ) from exc
        logger.debug("Elasticsearch client created (hosts=%s)", self.hosts)

    def search(self, query: str, sort_key: str, rows: int = 1) -> QueryResult:
        kwargs: Dict[str, Any] = {
            "index": self.index_name,
            "query": {"query_string": {"query": query}},
            "size": rows,
            "track_total_hits": True,
        }
        if sort_key:
            # unmapped_type keeps a missing field a document problem, not a 400
            kwargs["sort"] = [{sort_key: {"order": "desc", "unmapped_type": "date"}}]
        logger.debug("Elasticsearch search hosts=%s args=%s", self.hosts, kwargs)
        try:
            resp = self.es.search(**kwargs)  # type: ignore[union-attr]
        except Exception as exc:
            raise SearchClientError(
                f"Elasticsearch search failed: {exc} ({exc.__class__.__name__})"
            ) from exc
        # 8.x returns ObjectApiResponse, 7.x a plain dict
        return self.parse_response(getattr(resp, "body", resp), sort_key)

    @staticmethod
    def _with_sort_key(source: Dict[str, Any], sort_key: str) -> Dict[str, Any]:
        """Expose a dotted sort key (``event.created``) as a flat field.

        Elasticsearch sorts on the dotted path but keeps ``_source`` nested.
        """
        if not sort_key or "." not in sort_key or sort_key in source:
            return source
        node: Any = source
        for part in sort_key.split("."):
            if not isinstance(node, dict) or part not in node:
                return source
            node = node[part]
        return dict(source, **{sort_key: node})

    @classmethod
    def parse_response(cls, payload: Dict[str, Any], sort_key: str = "") -> QueryResult:
        """Build a QueryResult from a decoded search response body.

        ``status`` is 0 unless the search timed out or any shard failed.
        A dotted ``sort_key`` is looked up inside each nested ``_source``.
        """
        try:
            hits = payload["hits"]
            total = hits["total"]
            # 7.x+ reports {"value": n, "relation": "eq"}, 6.x a bare integer
            num_found = int(total["value"] if isinstance(total, dict) else total)
            shards = payload.get("_shards") or {}
            failed = bool(payload.get("timed_out")) or int(shards.get("failed", 0)) > 0
            return QueryResult(
                status=1 if failed else 0,
                num_found=num_found,
                documents=tuple(
                    cls._with_sort_key(hit.get("_source") or {}, sort_key)
                    for hit in hits.get("hits") or ()
                ),
                qtime_ms=int(payload.get("took", 0)),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise SearchClientError(f"Malformed Elasticsearch response: {exc!r}") from exc

    def close(self) -> None:
        """Close underlying transport (best-effort)."""
        if self.es is None:
            return
        try:
            self.es.close()
        except Exception as exc:  # pragma: no cover (network specifics)
            logger.debug("Ignoring error while closing Elasticsearch client: %s", exc)
