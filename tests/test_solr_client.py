import pytest
import requests

from probe.search_client import SearchClientError, SolrClient, build_client


# Fake session standing in for requests.Session so no Solr server is needed.
class MockResponse:
    def __init__(self, payload=None, status_code=200, body_error=None):
        self._payload = payload
        self.status_code = status_code
        self._body_error = body_error

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self):
        if self._body_error is not None:
            raise self._body_error
        return self._payload


class MockSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.auth = None
        self.closed = False
        self.last_call = None

    def get(self, url, params=None, timeout=None):
        self.last_call = {"url": url, "params": params, "timeout": timeout}
        if self.error is not None:
            raise self.error
        return self.response

    def close(self):
        self.closed = True


SELECT_PAYLOAD = {
    "responseHeader": {"status": 0, "QTime": 17, "params": {"q": "*:*"}},
    "response": {
        "numFound": 1234567,
        "start": 0,
        "docs": [{"id": "a1", "timestamp": "2024-05-01T11:59:00Z"}],
    },
}


def test_search_builds_select_request_and_parses_response():
    session = MockSession(MockResponse(SELECT_PAYLOAD))
    client = SolrClient(host="solr1", port=8983, core="logs", timeout=3, session=session)

    result = client.search("type:event", "timestamp", rows=1)

    assert session.last_call["url"] == "http://solr1:8983/solr/logs/select"
    assert session.last_call["params"] == {
        "q": "type:event",
        "rows": 1,
        "wt": "json",
        "sort": "timestamp desc",
    }
    assert session.last_call["timeout"] == 3
    assert result.status == 0
    assert result.num_found == 1234567
    assert result.qtime_ms == 17
    assert result.documents[0]["id"] == "a1"


def test_empty_sort_key_sends_no_sort():
    session = MockSession(MockResponse(SELECT_PAYLOAD))
    SolrClient(core="logs", session=session).search("*:*", "")
    assert "sort" not in session.last_call["params"]


def test_basic_auth_is_set_on_session():
    session = MockSession(MockResponse(SELECT_PAYLOAD))
    SolrClient(core="logs", basic_auth=("probe", "secret"), session=session)
    assert session.auth == ("probe", "secret")


def test_non_zero_status_is_passed_through():
    payload = {
        "responseHeader": {"status": 400, "QTime": 1},
        "response": {"numFound": 0, "docs": []},
    }
    client = SolrClient(core="logs", session=MockSession(MockResponse(payload)))
    assert client.search("*:*", "timestamp").status == 400


@pytest.mark.parametrize(
    "error",
    [requests.ConnectionError("refused"), requests.Timeout("read timed out")],
)
def test_transport_errors_become_search_client_error(error):
    client = SolrClient(core="logs", session=MockSession(error=error))
    with pytest.raises(SearchClientError):
        client.search("*:*", "timestamp")


def test_http_error_becomes_search_client_error():
    client = SolrClient(core="logs", session=MockSession(MockResponse(status_code=404)))
    with pytest.raises(SearchClientError):
        client.search("*:*", "timestamp")


def test_non_json_body_becomes_search_client_error():
    response = MockResponse(body_error=ValueError("Expecting value"))
    client = SolrClient(core="logs", session=MockSession(response))
    with pytest.raises(SearchClientError, match="non-JSON"):
        client.search("*:*", "timestamp")


def test_malformed_payload_becomes_search_client_error():
    with pytest.raises(SearchClientError, match="Malformed"):
        SolrClient.parse_response({"responseHeader": {"status": 0}})


@pytest.mark.parametrize(
    "kwargs",
    [
        {"host": "", "port": 8080, "core": "logs"},
        {"host": "solr1", "port": 0, "core": "logs"},
        {"host": "solr1", "port": 70000, "core": "logs"},
        {"host": "solr1", "port": 8080, "core": ""},
    ],
)
def test_invalid_connection_parameters(kwargs):
    with pytest.raises(SearchClientError, match="Invalid connection parameters"):
        SolrClient(session=MockSession(), **kwargs)


def test_close_closes_session():
    session = MockSession()
    SolrClient(core="logs", session=session).close()
    assert session.closed is True


def test_build_client_rejects_unknown_backend():
    with pytest.raises(SearchClientError, match="Unknown backend"):
        build_client("sphinx", core="logs")


def test_build_client_defaults_to_solr():
    client = build_client(core="logs", session=MockSession())
    assert isinstance(client, SolrClient)


def test_close_error_is_ignored():
    class BrokenSession(MockSession):
        def close(self):
            raise OSError("socket already gone")

    SolrClient(core="logs", session=BrokenSession()).close()
