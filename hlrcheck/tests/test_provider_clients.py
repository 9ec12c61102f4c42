import pytest
import requests

from hlrcheck.app.config import settings
from hlrcheck.app.services import hlr_client, email_client


class FakeResponse:
    def __init__(self, status_code=200, data=None):
        self.status_code = status_code
        self._data = data

    def json(self):
        if isinstance(self._data, Exception):
            raise self._data
        return self._data


# ---------- Seven.io ----------
def test_hlr_lookup_sends_key_and_number(monkeypatch, hlr_payload):
    seen = {}

    def fake_get(url, params=None, headers=None, timeout=None):
        seen.update(url=url, params=params, headers=headers)
        return FakeResponse(200, hlr_payload("+4915112345678"))

    monkeypatch.setattr(requests, "get", fake_get)
    data = hlr_client.lookup("+4915112345678")

    assert data["valid_number"] == "valid"
    assert seen["url"].endswith("/lookup/hlr")
    assert seen["params"] == {"number": "+4915112345678"}
    assert seen["headers"]["X-Api-Key"] == "test-seven-key"


def test_hlr_lookup_http_error(monkeypatch):
    monkeypatch.setattr(requests, "get", lambda *a, **kw: FakeResponse(500, {}))
    with pytest.raises(hlr_client.HlrLookupError, match="API error: 500"):
        hlr_client.lookup("+4915112345678")


def test_hlr_lookup_network_error(monkeypatch):
    def boom(*a, **kw):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(requests, "get", boom)
    with pytest.raises(hlr_client.HlrLookupError, match="Network error"):
        hlr_client.lookup("+4915112345678")


def test_hlr_lookup_bad_json(monkeypatch):
    monkeypatch.setattr(requests, "get", lambda *a, **kw: FakeResponse(200, ValueError("nope")))
    with pytest.raises(hlr_client.HlrLookupError):
        hlr_client.lookup("+4915112345678")


def test_hlr_lookup_without_key(monkeypatch):
    monkeypatch.setattr(settings, "SEVEN_IO_API_KEY", "")
    with pytest.raises(hlr_client.HlrLookupError, match="not configured"):
        hlr_client.lookup("+4915112345678")


def test_get_balance(monkeypatch):
    monkeypatch.setattr(requests, "get", lambda *a, **kw: FakeResponse(200, {"amount": 12.5, "currency": "EUR"}))
    assert hlr_client.get_balance() == {"balance": 12.5, "currency": "EUR"}


def test_get_balance_never_raises(monkeypatch):
    # the autouse fixture makes requests.get raise RuntimeError; use a requests error here
    def boom(*a, **kw):
        raise requests.Timeout("slow")

    monkeypatch.setattr(requests, "get", boom)
    out = hlr_client.get_balance()
    assert out["balance"] == 0
    assert out["error"] == "Network error"


def test_flatten_lookup_maps_columns(hlr_payload):
    fields = hlr_client.flatten_lookup("+4915112345678", hlr_payload("+4915112345678"))
    assert fields["current_carrier_name"] == "Telekom"
    assert fields["current_carrier_code"] == "26201"
    assert fields["country_prefix"] == "49"
    assert fields["roaming"] == "not_roaming"
    assert fields["current_network_type"] == "mobile"


def test_flatten_lookup_plain_roaming_string(hlr_payload):
    data = hlr_payload("+4915112345678")
    data["roaming"] = "roaming"
    assert hlr_client.flatten_lookup("+4915112345678", data)["roaming"] == "roaming"


# ---------- MillionVerifier ----------
def test_verify_email_ok(monkeypatch):
    seen = {}

    def fake_get(url, params=None, timeout=None):
        seen.update(params=params)
        return FakeResponse(200, {"email": params["email"], "result": "ok", "quality": "good", "resultcode": 1})

    monkeypatch.setattr(requests, "get", fake_get)
    data = email_client.verify_email("a@example.com")
    assert data["result"] == "ok"
    assert seen["params"]["api"] == "test-mv-key"


def test_verify_email_provider_error(monkeypatch):
    monkeypatch.setattr(requests, "get", lambda *a, **kw: FakeResponse(200, {"error": "Insufficient credits"}))
    with pytest.raises(email_client.EmailVerificationError, match="Insufficient credits"):
        email_client.verify_email("a@example.com")


def test_verify_emails_turns_failures_into_error_rows(monkeypatch):
    monkeypatch.setattr(email_client, "EMAIL_BATCH_DELAY_SECONDS", 0)

    def fake_verify(email, timeout=10):
        if email.startswith("x"):
            raise email_client.EmailVerificationError("boom")
        return {"email": email, "result": "ok"}

    monkeypatch.setattr(email_client, "verify_email", fake_verify)
    out = email_client.verify_emails(["a@example.com", " ", "x@example.com"])
    assert [r["result"] for r in out] == ["ok", "error"]
    assert out[1]["error"] == "boom"


def test_get_credits_reports_error(monkeypatch):
    monkeypatch.setattr(settings, "MILLIONVERIFIER_API_KEY", "")
    out = email_client.get_credits()
    assert out["credits"] == 0
    assert "not configured" in out["error"]


@pytest.mark.parametrize("result,verdict", [
    ("ok", "valid"),
    ("invalid", "invalid"),
    ("error", "invalid"),
    ("catch_all", "risky"),
    ("disposable", "risky"),
    ("unknown", "unknown"),
    (None, "unknown"),
])
def test_map_status(result, verdict):
    assert email_client.map_status(result) == verdict


def test_flatten_verification():
    fields = email_client.flatten_verification(
        "a@example.com",
        {"quality": "good", "result": "ok", "subresult": "ok", "resultcode": 1, "free": True, "didyoumean": ""},
    )
    assert fields["verdict"] == "valid"
    assert fields["is_free"] is True
    assert fields["is_role"] is False
    assert fields["did_you_mean"] is None
    assert fields["result_code"] == 1
