from django.core.validators import MinValueValidator
from django.db import models, transaction
from django.db.models.functions import Lower


class CountryQuerySet(models.QuerySet):

    def get_by_name(self, name):
        """Case-insensitive exact lookup; returns None when absent."""
        return self.filter(name__iexact=name).first()

    def upsert_by_name(self, record, now):
        """
        Update the row whose name matches ``record.name`` ignoring case, or
        insert a new one. The stored name of an existing row is kept.

        Lookup and write run in the same transaction; callers batching
        several records wrap them in their own ``transaction.atomic``.
        Returns ``(country, created)``.
        """
        values = record.field_values()
        values["last_refreshed_at"] = now

        with transaction.atomic(using=self.db, savepoint=False):
            existing = (
                self.select_for_update()
                .filter(name__iexact=record.name)
                .order_by("id")
                .first()
            )
            if existing is None:
                return self.create(name=record.name, **values), True

            self.filter(pk=existing.pk).update(**values)
            for attr, value in values.items():
                setattr(existing, attr, value)
            return existing, False


class Country(models.Model):
    # id: auto-generated
    name = models.CharField(max_length=255)
    capital = models.CharField(max_length=255, null=True, blank=True)
    region = models.CharField(max_length=100, null=True, blank=True, db_index=True)
    population = models.BigIntegerField(validators=[MinValueValidator(1)])
    # currency_code: first non-empty code from the catalog, may be missing
    currency_code = models.CharField(max_length=10, null=True, blank=True, db_index=True)
    # exchange_rate: set only when currency_code resolved against the rate table
    exchange_rate = models.FloatField(null=True, blank=True)
    # estimated_gdp: population * random(1000..2000) / exchange_rate, else 0
    estimated_gdp = models.FloatField(default=0)
    flag_url = models.URLField(max_length=500, null=True, blank=True)
    # last_refreshed_at: timestamp of the refresh run that last wrote the row
    last_refreshed_at = models.DateTimeField()

    objects = CountryQuerySet.as_manager()

    class Meta:
        db_table = "countries"
        verbose_name_plural = "countries"
        constraints = [
            models.UniqueConstraint(Lower("name"), name="countries_name_ci_unique"),
        ]

    def __str__(self):
        return self.name
