"""
Refresh pipeline: fetch the country catalog and the USD rate table, turn each
catalog entry into a ``CountryRecord``, upsert the whole batch in one
transaction, then redraw the summary image.

Every stage can be swapped out through ``run_refresh`` keyword arguments so
tests can pin the random multiplier or feed canned payloads.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime

from django.db import DEFAULT_DB_ALIAS, DatabaseError, transaction

from . import summary, utils
from .exceptions import PersistError, RenderError
from .models import Country
from .records import CountryRecord

logger = logging.getLogger(__name__)


@dataclass
class RefreshResult:
    refreshed_at: datetime
    accepted: int = 0
    skipped: int = 0
    inserted: int = 0
    updated: int = 0
    image_generated: bool = False


def select_currency_code(raw):
    """First currency's code, or None when missing or blank."""
    if not raw.currencies:
        return None
    code = raw.currencies[0].code
    if code is None or not code.strip():
        return None
    return code.strip()


def normalize(raw, rates, now, multiplier):
    """
    Build the record to persist for one catalog entry, or None when the entry
    has a blank name or zero population.

    ``estimated_gdp`` is population * multiplier() / rate when the currency
    resolves against ``rates`` and the result is finite, else 0 with no
    exchange rate.
    """
    name = (raw.name or "").strip()
    if not name or not raw.population:
        return None

    currency_code = select_currency_code(raw)
    exchange_rate = None
    estimated_gdp = 0.0

    rate = rates.get(currency_code) if currency_code else None
    if rate is not None:
        gdp = raw.population * multiplier() / rate
        # tiny rates overflow to inf, which cannot be stored or rendered as JSON
        if math.isfinite(gdp):
            exchange_rate = rate
            estimated_gdp = gdp

    return CountryRecord(
        name=name,
        capital=raw.capital,
        region=raw.region,
        population=raw.population,
        currency_code=currency_code,
        exchange_rate=exchange_rate,
        estimated_gdp=estimated_gdp,
        flag_url=raw.flag or None,
        last_refreshed_at=now,
    )


def transform(raw_countries, rates, now, multiplier):
    """Normalize every entry; returns (records, skipped_count)."""
    records = []
    skipped = 0
    for raw in raw_countries:
        record = normalize(raw, rates, now, multiplier)
        if record is None:
            logger.debug("Skipping invalid country entry %r (population=%s)", raw.name, raw.population)
            skipped += 1
            continue
        records.append(record)
    return records, skipped


def persist(records, now, using=DEFAULT_DB_ALIAS):
    """
    Upsert all records in a single transaction. Any database failure rolls
    back the whole batch and is raised as PersistError.
    Returns (inserted, updated).
    """
    inserted = updated = 0
    try:
        with transaction.atomic(using=using):
            countries = Country.objects.using(using)
            for record in records:
                _, created = countries.upsert_by_name(record, now)
                if created:
                    inserted += 1
                else:
                    updated += 1
    except DatabaseError as exc:
        raise PersistError("failed to store refreshed countries") from exc
    return inserted, updated


def run_refresh(*, fetch_countries=None, fetch_rates=None, multiplier=None,
                clock=None, render=None, using=DEFAULT_DB_ALIAS):
    """
    Run one refresh end to end.

    Raises FetchError when either source fails (nothing is written) and
    PersistError when the batch cannot be stored (nothing is written). A
    failing summary image is logged and reported in the result only.
    """
    fetch_countries = fetch_countries or utils.fetch_countries
    fetch_rates = fetch_rates or utils.fetch_exchange_rates
    multiplier = multiplier or utils.make_multiplier
    clock = clock or utils.get_now
    render = render or summary.render_summary

    raw_countries = fetch_countries()
    rates = fetch_rates()

    now = clock()
    records, skipped = transform(raw_countries, rates, now, multiplier)
    inserted, updated = persist(records, now, using=using)

    result = RefreshResult(
        refreshed_at=now,
        accepted=len(records),
        skipped=skipped,
        inserted=inserted,
        updated=updated,
    )
    logger.info(
        "Refresh %s: %d accepted (%d new, %d updated), %d skipped",
        now.isoformat(), result.accepted, inserted, updated, skipped,
    )

    try:
        render(now, using=using)
    except RenderError as exc:
        logger.warning("Failed to generate summary image: %s", exc)
    else:
        result.image_generated = True
    return result
