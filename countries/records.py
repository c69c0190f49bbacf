from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class Currency:
    code: Optional[str] = None


@dataclass(frozen=True)
class RawCountry:
    """One entry of the country catalog, as decoded from the external API."""

    name: str
    population: int
    flag: str = ""
    capital: Optional[str] = None
    region: Optional[str] = None
    currencies: tuple = field(default_factory=tuple)


@dataclass(frozen=True)
class ExchangeRateTable:
    base: str
    date: Optional[str]
    rates: dict

    def get(self, code):
        return self.rates.get(code)


@dataclass
class CountryRecord:
    """A normalized country ready to be upserted by name."""

    name: str
    population: int
    last_refreshed_at: datetime
    capital: Optional[str] = None
    region: Optional[str] = None
    currency_code: Optional[str] = None
    exchange_rate: Optional[float] = None
    estimated_gdp: float = 0.0
    flag_url: Optional[str] = None

    def field_values(self):
        """Mutable column values, i.e. everything except the name."""
        return {
            "capital": self.capital,
            "region": self.region,
            "population": self.population,
            "currency_code": self.currency_code,
            "exchange_rate": self.exchange_rate,
            "estimated_gdp": self.estimated_gdp,
            "flag_url": self.flag_url,
            "last_refreshed_at": self.last_refreshed_at,
        }
