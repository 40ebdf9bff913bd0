"""Search collection health check (Nagios plugin).

Performs one search against a Solr core or Elasticsearch index and alerts on:
    - search status
    - number of matching documents
    - search time
    - age of the newest document (sort key field)

Prints one status line with ``qtime`` and ``documents`` perfdata and exits
with the Nagios code (0 OK, 1 WARNING, 2 CRITICAL, 3 UNKNOWN).

Usually run via:
    check-search -host solr1 -port 8983 -core logs -sortkey timestamp
or:
    python scripts/check_search.py --backend elasticsearch --host es1 --port 9200 --core logs-* --sortkey @timestamp
"""

import argparse
import logging
import sys
from datetime import datetime, timedelta, timezone
from typing import Optional

from config.config_loader import Config, ConfigError
from probe.evaluator import HealthEvaluator, QueryResult, Severity, Thresholds, Verdict
from probe.report import render
from probe.search_client import SUPPORTED_BACKENDS, SearchClientError, build_client

logger = logging.getLogger(__name__)


class _ProbeArgumentParser(argparse.ArgumentParser):
    """Argument errors must exit UNKNOWN (3), not argparse's usual 2."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(int(Severity.UNKNOWN), f"{self.prog}: error: {message}\n")


def _build_arg_parser() -> argparse.ArgumentParser:
    # Options default to None so that unset flags fall back to Config
    parser = _ProbeArgumentParser(
        description="Search collection health check", allow_abbrev=False
    )
    parser.add_argument("-host", "--host", help="HTTP host of the search service")
    parser.add_argument("-port", "--port", type=int, help="HTTP port of the search service")
    parser.add_argument("-core", "--core", help="Solr core or Elasticsearch index name")
    parser.add_argument("-query", "--query", help="Search query in the form key:value (default: *:*)")
    parser.add_argument(
        "-sortkey",
        "--sortkey",
        help="Search result sort key (descending order) - should be a date field",
    )
    parser.add_argument(
        "-minhits", "--minhits", type=int, help="Number of expected hits in the response"
    )
    parser.add_argument(
        "-maxqtime", "--maxqtime", type=int, help="Max query processing time (ms)"
    )
    parser.add_argument(
        "--stale-after",
        type=int,
        dest="stale_after",
        help="Max age of the newest document in minutes (default: 30)",
    )
    parser.add_argument("--backend", choices=SUPPORTED_BACKENDS, help="Search backend (default: solr)")
    parser.add_argument("--scheme", choices=("http", "https"), help="URL scheme (default: http)")
    parser.add_argument("--timeout", type=float, help="Request timeout in seconds (default: 10)")
    parser.add_argument("--username", help="Basic auth user")
    parser.add_argument("--password", help="Basic auth password")
    parser.add_argument("--label", help="Service label printed in the status line")
    parser.add_argument("--config", help="Alternate YAML config file")
    parser.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="Increase logging verbosity (repeatable)",
    )
    return parser


def _pick(cli_value, config_value):
    return config_value if cli_value is None else cli_value


def _configure_logging(level_name: str, verbose: int) -> None:
    # Only set a default config if the caller hasn't already done so.
    # basicConfig logs to stderr, stdout is reserved for the status line.
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.WARNING, format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
        )
    if verbose >= 2:
        logging.getLogger().setLevel(logging.DEBUG)
    elif verbose == 1:
        logging.getLogger().setLevel(logging.INFO)
    else:
        logging.getLogger().setLevel(getattr(logging, level_name, logging.WARNING))


def run_check(client, query: str, thresholds: Thresholds, now: datetime) -> Verdict:
    """Run the search through ``client`` and evaluate it.

    Client failures come back as UNKNOWN verdicts, never as exceptions.
    """
    try:
        result: QueryResult = client.search(query, thresholds.sort_key, rows=1)
    except SearchClientError as exc:
        logger.error("Search query failed: %s", exc)
        return Verdict(
            Severity.UNKNOWN, "Unable to perform search query, check parameters and connection"
        )
    finally:
        client.close()
    logger.info(
        "Search status=%s numFound=%s qtime=%sms returned=%d",
        result.status,
        result.num_found,
        result.qtime_ms,
        len(result.documents),
    )
    return HealthEvaluator(thresholds).evaluate(result, now)


def _probe(args, now: Optional[datetime]) -> Verdict:
    try:
        config = Config.load(args.config)
    except ConfigError as exc:
        _configure_logging("WARNING", args.verbose)
        logger.error("Configuration error: %s", exc)
        return Verdict(Severity.UNKNOWN, f"Invalid configuration: {exc}")

    _configure_logging(config.LOG_LEVEL, args.verbose)

    backend = _pick(args.backend, config.SEARCH_BACKEND)
    args.label = args.label or backend.upper()

    username = _pick(args.username, config.USERNAME)
    password = _pick(args.password, config.PASSWORD)
    thresholds = Thresholds(
        sort_key=_pick(args.sortkey, config.SORT_KEY),
        min_hits=_pick(args.minhits, config.MIN_HITS),
        max_qtime_ms=_pick(args.maxqtime, config.MAX_QTIME_MS),
        stale_after=timedelta(minutes=_pick(args.stale_after, config.STALE_AFTER_MINUTES)),
    )

    try:
        client = build_client(
            backend,
            host=_pick(args.host, config.SEARCH_HOST),
            port=_pick(args.port, config.SEARCH_PORT),
            core=_pick(args.core, config.SEARCH_CORE),
            scheme=_pick(args.scheme, config.SCHEME),
            timeout=_pick(args.timeout, config.TIMEOUT),
            basic_auth=(username, password or "") if username else None,
        )
    except SearchClientError as exc:
        logger.error("Cannot build %s client: %s", backend, exc)
        return Verdict(Severity.UNKNOWN, str(exc))

    return run_check(
        client,
        _pick(args.query, config.QUERY),
        thresholds,
        now or datetime.now(timezone.utc),
    )


def main(argv=None, now: Optional[datetime] = None) -> int:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)
    try:
        verdict = _probe(args, now)
    except Exception as exc:
        logger.exception("Unexpected error during check")
        verdict = Verdict(Severity.UNKNOWN, f"Unexpected error: {exc}")
    print(render(verdict, label=args.label or "SEARCH"))
    return verdict.exit_code


if __name__ == "__main__":
    sys.exit(main())
