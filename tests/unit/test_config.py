import pytest
from pydantic import ValidationError

from limitation.config import Settings, StoreFailurePolicy


def test_defaults(monkeypatch):
    for name in ["LIMITATION_RATE_LIMIT", "LIMITATION_RATE_PERIOD", "LIMITATION_HEADER"]:
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.rate_limit == 5000
    assert settings.rate_period == 3600
    assert settings.header == "authorization"
    assert settings.redis_url == "redis://127.0.0.1/"
    assert settings.proxy_to == "http://127.0.0.1:8000"
    assert settings.store_failure_policy == StoreFailurePolicy.OPEN


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("LIMITATION_RATE_LIMIT", "10")
    monkeypatch.setenv("LIMITATION_RATE_PERIOD", "60")
    monkeypatch.setenv("LIMITATION_PROXY_TO", "http://backend:9000/")
    monkeypatch.setenv("LIMITATION_STORE_FAILURE_POLICY", "closed")

    settings = Settings(_env_file=None)

    assert settings.rate_limit == 10
    assert settings.rate_period == 60
    assert settings.proxy_to == "http://backend:9000"
    assert settings.store_failure_policy == StoreFailurePolicy.CLOSED


def test_header_is_lower_cased():
    assert Settings(header=" X-API-Token ", _env_file=None).header == "x-api-token"


@pytest.mark.parametrize(
    "field, value",
    [
        ("rate_limit", 0),
        ("rate_limit", -5),
        ("rate_period", 0),
        ("store_timeout", 0),
        ("backend_timeout", -1),
        ("header", "  "),
        ("proxy_to", "backend:9000"),
        ("store_failure_policy", "sometimes"),
    ],
)
def test_rejects_invalid_values(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value}, _env_file=None)
