from probe.evaluator import Metric, Severity, Verdict
from probe.report import format_perfdatum, render


def test_render_ok_with_perfdata():
    verdict = Verdict(
        Severity.OK,
        "Search processed in 50ms, 2000000 documents found",
        {
            "qtime": Metric("qtime", 50, "ms", crit="200", minimum=0),
            "documents": Metric("documents", 2000000, "c", warn="1000000:", minimum=0),
        },
    )
    assert render(verdict, label="SOLR") == (
        "SOLR OK: Search processed in 50ms, 2000000 documents found"
        " | qtime=50ms;;200;0 documents=2000000c;1000000:;;0"
    )


def test_render_without_metrics_has_no_perfdata_separator():
    verdict = Verdict(Severity.CRITICAL, "Search returned zero documents.")
    assert render(verdict, label="SOLR") == "SOLR CRITICAL: Search returned zero documents."


def test_render_strips_pipe_from_message():
    verdict = Verdict(Severity.UNKNOWN, "Unexpected error: a|b")
    assert render(verdict) == "SEARCH UNKNOWN: Unexpected error: a/b"


def test_perfdatum_trims_empty_trailing_fields():
    assert format_perfdatum(Metric("qtime", 12, "ms")) == "qtime=12ms"


def test_perfdatum_quotes_labels_with_spaces():
    assert format_perfdatum(Metric("query time", 1.5, "s")) == "'query time'=1.5s"


def test_exit_codes_follow_nagios_convention():
    assert [Verdict(s, "").exit_code for s in Severity] == [0, 1, 2, 3]
