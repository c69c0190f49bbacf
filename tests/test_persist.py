"""Reconciler/persister: case-insensitive upsert and all-or-nothing batches."""

from datetime import timedelta
from unittest import mock

import pytest
from django.db import DatabaseError, IntegrityError, transaction

from countries.exceptions import FetchError, PersistError
from countries.models import Country, CountryQuerySet
from countries.records import CountryRecord
from countries.refresh import persist, run_refresh

pytestmark = pytest.mark.django_db


def record(name, now, **fields):
    fields.setdefault("population", 1000)
    return CountryRecord(name=name, last_refreshed_at=now, **fields)


def snapshot():
    return list(Country.objects.order_by("id").values())


def test_persist_inserts_new_rows(now):
    inserted, updated = persist(
        [record("France", now, currency_code="EUR", exchange_rate=0.92, estimated_gdp=10.0),
         record("Ghana", now)],
        now,
    )

    assert (inserted, updated) == (2, 0)
    france = Country.objects.get(name="France")
    assert france.exchange_rate == 0.92
    assert france.estimated_gdp == 10.0
    assert france.last_refreshed_at == now


def test_persist_updates_case_insensitively(now, make_country):
    original = make_country("France", population=10, capital="Old")
    later = now + timedelta(hours=1)

    inserted, updated = persist([record("FRANCE", later, capital="Paris", population=67391582)], later)

    assert (inserted, updated) == (0, 1)
    assert Country.objects.count() == 1
    france = Country.objects.get()
    assert france.pk == original.pk
    assert france.name == "France"
    assert france.capital == "Paris"
    assert france.population == 67391582
    assert france.last_refreshed_at == later


def test_persist_clears_fields_that_disappeared(now, make_country):
    make_country("France", currency_code="EUR", exchange_rate=0.92, estimated_gdp=99.0)

    persist([record("France", now)], now)

    france = Country.objects.get()
    assert france.currency_code is None
    assert france.exchange_rate is None
    assert france.estimated_gdp == 0


def test_duplicates_in_one_batch_collapse(now):
    inserted, updated = persist([record("France", now, population=1), record("france", now, population=2)], now)

    assert (inserted, updated) == (1, 1)
    assert list(Country.objects.values_list("name", "population")) == [("France", 2)]


def test_persist_empty_batch(now):
    assert persist([], now) == (0, 0)


def test_failure_midway_rolls_back_whole_batch(now, make_country):
    make_country("France", population=10)
    make_country("Ghana", population=20)
    before = snapshot()
    real_upsert = CountryQuerySet.upsert_by_name
    calls = []

    def fail_on_second(self, rec, ts):
        calls.append(rec.name)
        if len(calls) == 2:
            raise DatabaseError("disk full")
        return real_upsert(self, rec, ts)

    later = now + timedelta(hours=1)
    batch = [record("France", later, population=11), record("Ghana", later, population=21), record("Togo", later)]
    with mock.patch.object(CountryQuerySet, "upsert_by_name", autospec=True, side_effect=fail_on_second):
        with pytest.raises(PersistError) as excinfo:
            persist(batch, later)

    assert calls == ["France", "Ghana"]
    assert isinstance(excinfo.value.__cause__, DatabaseError)
    assert snapshot() == before


def test_name_is_unique_ignoring_case(make_country):
    make_country("France")

    with pytest.raises(IntegrityError):
        with transaction.atomic():
            make_country("FRANCE")


def test_refresh_twice_is_idempotent_apart_from_timestamp(sources, now):
    first, second = now, now + timedelta(minutes=5)

    run_refresh(multiplier=lambda: 1500, clock=lambda: first)
    rows_first = snapshot()
    run_refresh(multiplier=lambda: 1500, clock=lambda: second)
    rows_second = snapshot()

    assert len(rows_first) == len(rows_second) == 4
    for a, b in zip(rows_first, rows_second):
        assert a["last_refreshed_at"] == first
        assert b["last_refreshed_at"] == second
        a.pop("last_refreshed_at")
        b.pop("last_refreshed_at")
        assert a == b


def test_later_run_with_different_case_updates_same_row(sources, settings, now):
    wakanda = {"name": "Wakanda", "population": 1000, "flag": "f.png", "currencies": [{"code": "WKD"}]}
    sources.set(settings.COUNTRIES_API_URL, [wakanda])
    sources.set(settings.EXCHANGE_API_URL, {"base": "USD", "rates": {"WKD": 2.0}})
    run_refresh(multiplier=lambda: 1500, clock=lambda: now)

    sources.set(settings.COUNTRIES_API_URL, [dict(wakanda, name="WAKANDA", population=2000)])
    run_refresh(multiplier=lambda: 1500, clock=lambda: now + timedelta(days=1))

    row = Country.objects.get(name__iexact="wakanda")
    assert Country.objects.count() == 1
    assert row.name == "Wakanda"
    assert row.population == 2000
    assert row.estimated_gdp == pytest.approx(1_500_000)


def test_oversized_population_aborts_refresh_before_writing(sources, settings, country_payload, now, make_country):
    make_country("France", population=5)
    before = snapshot()
    country_payload[1]["population"] = 2 ** 64 - 1
    sources.set(settings.COUNTRIES_API_URL, country_payload)

    with pytest.raises(FetchError):
        run_refresh(multiplier=lambda: 1500, clock=lambda: now)

    assert snapshot() == before
