from __future__ import annotations

import httpx
import pytest

from lotscout.engine.antibot.strategies import AntiBotContext, RequestDirective
from lotscout.engine.fetcher import FetchRequest, Fetcher
from lotscout.errors import FetchError


def _scripted(statuses: list[int | Exception], calls: list[dict]):
    def fake_request(**kwargs):
        calls.append(kwargs)
        outcome = statuses[min(len(calls), len(statuses)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        request = httpx.Request(kwargs["method"], kwargs["url"])
        return httpx.Response(outcome, request=request, text=f"status {outcome}")

    return fake_request


def test_fetcher_applies_strategy_headers(monkeypatch: pytest.MonkeyPatch, sample_global_config, sample_source_config) -> None:
    source = sample_source_config()
    fetcher = Fetcher(sample_global_config)
    context = AntiBotContext(source=source, global_config=sample_global_config)

    class DummyChain:
        def prepare(self, _context):
            directive = RequestDirective()
            directive.headers["X-Strategy"] = "enabled"
            directive.timeout = 12
            return directive

        def notify_success(self, *_args, **_kwargs):
            return

        def notify_failure(self, *_args, **_kwargs):
            return

        def should_retry(self, _context):
            return False

    monkeypatch.setattr(fetcher, "_build_chain", lambda _: (context, DummyChain()))
    calls: list[dict] = []
    monkeypatch.setattr(fetcher._client, "request", _scripted([200], calls))

    response = fetcher.fetch(source, FetchRequest(url="https://example.com/lots", headers={"Accept": "text/html"}))
    fetcher.close()

    assert calls[0]["headers"] == {"Accept": "text/html", "X-Strategy": "enabled"}
    assert calls[0]["timeout"] == 12
    assert response.status_code == 200
    assert response.text == "status 200"
    assert response.url == "https://example.com/lots"


def test_fetcher_retries_server_errors(monkeypatch: pytest.MonkeyPatch, sample_global_config, sample_source_config) -> None:
    source = sample_source_config()
    fetcher = Fetcher(sample_global_config)
    calls: list[dict] = []
    monkeypatch.setattr(fetcher._client, "request", _scripted([503, 200], calls))

    response = fetcher.fetch(source, FetchRequest(url="https://example.com/lots"))
    fetcher.close()

    assert len(calls) == 2
    assert response.status_code == 200


def test_fetcher_retries_transport_errors(monkeypatch: pytest.MonkeyPatch, sample_global_config, sample_source_config) -> None:
    source = sample_source_config()
    fetcher = Fetcher(sample_global_config)
    calls: list[dict] = []
    monkeypatch.setattr(
        fetcher._client, "request", _scripted([httpx.ConnectTimeout("boom"), 200], calls)
    )

    response = fetcher.fetch(source, FetchRequest(url="https://example.com/lots"))
    fetcher.close()

    assert len(calls) == 2
    assert response.text == "status 200"


def test_fetcher_raises_when_retries_are_exhausted(monkeypatch: pytest.MonkeyPatch, sample_global_config, sample_source_config) -> None:
    source = sample_source_config()
    fetcher = Fetcher(sample_global_config)
    calls: list[dict] = []
    monkeypatch.setattr(fetcher._client, "request", _scripted([500], calls))

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch(source, FetchRequest(url="https://example.com/lots"))
    fetcher.close()

    assert excinfo.value.status_code == 500
    assert excinfo.value.url == "https://example.com/lots"
    assert len(calls) == 2


def test_fetcher_does_not_retry_missing_pages(monkeypatch: pytest.MonkeyPatch, sample_global_config, sample_source_config) -> None:
    source = sample_source_config()
    fetcher = Fetcher(sample_global_config)
    calls: list[dict] = []
    monkeypatch.setattr(fetcher._client, "request", _scripted([404, 200], calls))

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch(source, FetchRequest(url="https://example.com/missing"))
    fetcher.close()

    assert excinfo.value.status_code == 404
    assert len(calls) == 1


def test_fetcher_transport_failure_keeps_cause(monkeypatch: pytest.MonkeyPatch, sample_global_config, sample_source_config) -> None:
    source = sample_source_config()
    fetcher = Fetcher(sample_global_config)
    calls: list[dict] = []
    monkeypatch.setattr(fetcher._client, "request", _scripted([httpx.ConnectError("refused")], calls))

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch(source, FetchRequest(url="https://example.com/lots"))
    fetcher.close()

    assert excinfo.value.status_code is None
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


def test_redirect_status_is_not_returned(monkeypatch: pytest.MonkeyPatch, sample_global_config, sample_source_config) -> None:
    source = sample_source_config()
    fetcher = Fetcher(sample_global_config)
    calls: list[dict] = []
    monkeypatch.setattr(fetcher._client, "request", _scripted([304], calls))

    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch(source, FetchRequest(url="https://example.com/lots"))
    fetcher.close()

    assert excinfo.value.status_code == 304
    assert len(calls) == 1
