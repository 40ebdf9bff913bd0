"""Rendering of verdicts for Nagios-compatible supervisors.

Output is a single line::

    SOLR WARNING: Number of document hits is lower than expected. | qtime=50ms;;200;0 documents=500000c;1000000:;;0

and the process exit code is the severity value (OK=0 ... UNKNOWN=3).
"""

from typing import Iterable, Optional

from probe.evaluator import Metric, Verdict

_QUOTE_CHARS = (" ", "=", "'")


def _fmt_number(value: Optional[float]) -> str:
    if value is None:
        return ""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def format_perfdatum(metric: Metric) -> str:
    label = metric.name
    if any(ch in label for ch in _QUOTE_CHARS):
        label = "'" + label.replace("'", "''") + "'"
    fields = [
        f"{_fmt_number(metric.value)}{metric.unit}",
        metric.warn or "",
        metric.crit or "",
        _fmt_number(metric.minimum),
        _fmt_number(metric.maximum),
    ]
    while len(fields) > 1 and not fields[-1]:
        fields.pop()
    return f"{label}=" + ";".join(fields)


def format_perfdata(metrics: Iterable[Metric]) -> str:
    return " ".join(format_perfdatum(m) for m in metrics)


def render(verdict: Verdict, label: str = "SEARCH") -> str:
    """Status line for ``verdict``; perfdata is appended when present."""
    # '|' separates text from perfdata, so it cannot appear in the message
    message = verdict.message.replace("|", "/")
    line = f"{label} {verdict.severity.name}: {message}"
    if verdict.metrics:
        line += " | " + format_perfdata(verdict.metrics.values())
    return line
