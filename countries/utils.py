import logging
import os
import random
from datetime import datetime, timezone
from urllib.parse import urlparse

import requests
from django.conf import settings
from requests.exceptions import RequestException

from .exceptions import FetchError
from .records import Currency, ExchangeRateTable, RawCountry
from .serializers import ExchangeRateTableSerializer, RawCountrySerializer

logger = logging.getLogger(__name__)

MULTIPLIER_RANGE = (1000, 2000)


def source_name(url):
    """Host of an external endpoint without a leading ``www.``, used in error messages."""
    host = urlparse(url).hostname or url
    return host[4:] if host.startswith("www.") else host


def _get_json(url):
    source = source_name(url)
    try:
        resp = requests.get(url, timeout=settings.EXTERNAL_API_TIMEOUT)
        resp.raise_for_status()
        return source, resp.json()
    except RequestException as exc:
        raise FetchError(source, str(exc)) from exc
    except ValueError as exc:
        # body was not JSON
        raise FetchError(source, f"invalid JSON: {exc}") from exc


def fetch_countries():
    """GET the country catalog and decode it into ``RawCountry`` entries."""
    source, payload = _get_json(settings.COUNTRIES_API_URL)
    serializer = RawCountrySerializer(data=payload, many=True)
    if not serializer.is_valid():
        raise FetchError(source, f"unexpected payload: {serializer.errors}")

    countries = []
    for item in serializer.validated_data:
        currencies = item.get("currencies") or []
        countries.append(RawCountry(
            name=item["name"],
            capital=item.get("capital"),
            region=item.get("region"),
            population=item["population"],
            flag=item.get("flag") or "",
            currencies=tuple(Currency(code=c.get("code")) for c in currencies),
        ))
    logger.debug("Fetched %d countries from %s", len(countries), source)
    return countries


def fetch_exchange_rates():
    """GET the USD rate table. Rates that are zero or negative are left out."""
    source, payload = _get_json(settings.EXCHANGE_API_URL)
    serializer = ExchangeRateTableSerializer(data=payload)
    if not serializer.is_valid():
        raise FetchError(source, f"unexpected payload: {serializer.errors}")

    data = serializer.validated_data
    rates = {}
    for code, rate in data["rates"].items():
        if rate > 0:
            rates[code] = rate
        else:
            logger.warning("Ignoring non-positive rate %r for %s from %s", rate, code, source)

    return ExchangeRateTable(
        base=data.get("base") or data.get("base_code") or "",
        date=data.get("date") or data.get("time_last_update_utc"),
        rates=rates,
    )


def make_multiplier():
    """Random synthetic price-level factor used for estimated_gdp; not an economic model."""
    return random.uniform(*MULTIPLIER_RANGE)


def get_summary_image_path():
    """Return full path to the summary image in the writable cache."""
    path = settings.COUNTRY_CACHE_DIR
    os.makedirs(path, exist_ok=True)
    return os.path.join(path, settings.SUMMARY_IMAGE_NAME)


def get_now():
    """Return current UTC datetime (aware)."""
    return datetime.now(timezone.utc)
