from journalflow.core.sentry_init import _before_send, init_sentry


def test_before_send_filters_request_body_and_private_comments():
    event = {
        "request": {
            "headers": {"Authorization": "Bearer secret", "X-Request-Id": "r-1"},
            "data": {"private_comments": "author is sloppy"},
            "body": "raw-body",
        },
        "extra": {"review": {"comments": "fine", "private_comments": "editor only"}},
    }

    out = _before_send(event, {})
    assert out is not None

    request = out["request"]
    assert request["data"] == "[Filtered]"
    assert request["body"] == "[Filtered]"
    assert "Authorization" not in request["headers"]
    assert request["headers"]["X-Request-Id"] == "r-1"
    assert out["extra"]["review"] == {"comments": "fine", "private_comments": "[Filtered]"}


def test_init_sentry_disabled_without_dsn(monkeypatch):
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    monkeypatch.delenv("SENTRY_ENABLED", raising=False)
    assert init_sentry() is False


def test_init_sentry_respects_explicit_disable(monkeypatch):
    monkeypatch.setenv("SENTRY_DSN", "https://key@o0.ingest.sentry.io/1")
    monkeypatch.setenv("SENTRY_ENABLED", "false")
    assert init_sentry() is False
