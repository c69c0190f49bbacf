"""Shared fixtures: canned external payloads, a fake ``requests.get`` and a
throwaway cache directory for the summary image."""

import json
from datetime import datetime, timezone

import pytest
import requests

from countries.models import Country


@pytest.fixture(autouse=True)
def cache_dir(settings, tmp_path):
    """Keep summary images out of the project tree."""
    path = tmp_path / "cache"
    settings.COUNTRY_CACHE_DIR = str(path)
    return path


@pytest.fixture
def country_payload():
    return [
        {
            "name": "Nigeria",
            "capital": "Abuja",
            "region": "Africa",
            "population": 206139587,
            "flag": "https://flagcdn.com/ng.svg",
            "currencies": [{"code": "NGN", "name": "Nigerian naira", "symbol": "₦"}],
        },
        {
            "name": "France",
            "capital": "Paris",
            "region": "Europe",
            "population": 67391582,
            "flag": "https://flagcdn.com/fr.svg",
            "currencies": [{"code": "EUR", "name": "Euro", "symbol": "€"}],
        },
        {
            "name": "Ghana",
            "capital": "Accra",
            "region": "Africa",
            "population": 31072940,
            "flag": "https://flagcdn.com/gh.svg",
            "currencies": [{"code": "GHS", "name": "Ghanaian cedi", "symbol": "₵"}],
        },
        {
            "name": "Antarctica",
            "region": "Polar",
            "population": 1000,
            "flag": "https://flagcdn.com/aq.svg",
        },
        {
            "name": "Atlantis",
            "region": "Europe",
            "population": 0,
            "flag": "https://example.com/atlantis.svg",
            "currencies": [{"code": "EUR"}],
        },
        {
            "name": "   ",
            "population": 10,
            "flag": "https://example.com/blank.svg",
            "currencies": [],
        },
    ]


@pytest.fixture
def rates_payload():
    return {
        "result": "success",
        "base_code": "USD",
        "time_last_update_utc": "Sat, 17 Oct 2026 00:02:31 +0000",
        "rates": {"USD": 1, "NGN": 1600.5, "EUR": 0.92, "GHS": 15.3},
    }


def json_response(url, payload, status_code=200):
    resp = requests.Response()
    resp.status_code = status_code
    resp.url = url
    resp.encoding = "utf-8"
    resp._content = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    return resp


class FakeSources:
    """Stand-in for ``requests.get`` keyed by URL."""

    def __init__(self):
        self.responses = {}
        self.calls = []

    def set(self, url, payload, status_code=200):
        self.responses[url] = json_response(url, payload, status_code)

    def fail(self, url, exc):
        self.responses[url] = exc

    def __call__(self, url, timeout=None, **kwargs):
        self.calls.append((url, timeout))
        value = self.responses[url]
        if isinstance(value, Exception):
            raise value
        return value

    @property
    def urls(self):
        return [url for url, _ in self.calls]


@pytest.fixture
def sources(monkeypatch, settings, country_payload, rates_payload):
    fake = FakeSources()
    fake.set(settings.COUNTRIES_API_URL, country_payload)
    fake.set(settings.EXCHANGE_API_URL, rates_payload)
    monkeypatch.setattr("countries.utils.requests.get", fake)
    return fake


@pytest.fixture
def now():
    return datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_country(now):
    def _make(name, **fields):
        values = {
            "capital": None,
            "region": None,
            "population": 1000,
            "currency_code": None,
            "exchange_rate": None,
            "estimated_gdp": 0,
            "flag_url": None,
            "last_refreshed_at": now,
        }
        values.update(fields)
        return Country.objects.create(name=name, **values)
    return _make
