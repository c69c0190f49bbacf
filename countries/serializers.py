from rest_framework import serializers

from .models import Country

# largest value a BigIntegerField column can hold
MAX_POPULATION = 2 ** 63 - 1


class CountrySerializer(serializers.ModelSerializer):
    class Meta:
        model = Country
        fields = [
            'id', 'name', 'capital', 'region', 'population',
            'currency_code', 'exchange_rate', 'estimated_gdp',
            'flag_url', 'last_refreshed_at'
        ]
        read_only_fields = fields


# --- External payloads ---
# These only check structure; business rules (blank names, zero population)
# are applied by the transformer so a single bad entry is skipped instead of
# failing the whole catalog.

class CurrencySerializer(serializers.Serializer):
    code = serializers.CharField(required=False, allow_null=True, allow_blank=True, default=None)


class RawCountrySerializer(serializers.Serializer):
    name = serializers.CharField(allow_blank=True)
    capital = serializers.CharField(required=False, allow_null=True, allow_blank=True, default=None)
    region = serializers.CharField(required=False, allow_null=True, allow_blank=True, default=None)
    population = serializers.IntegerField(min_value=0, max_value=MAX_POPULATION)
    flag = serializers.CharField(required=False, allow_null=True, allow_blank=True, default="")
    currencies = CurrencySerializer(many=True, required=False, allow_null=True, default=list)


class ExchangeRateTableSerializer(serializers.Serializer):
    """
    Accepts both ``{base, date, rates}`` and the open.er-api.com shape
    ``{base_code, time_last_update_utc, rates}``.
    """
    base = serializers.CharField(required=False)
    base_code = serializers.CharField(required=False)
    date = serializers.CharField(required=False, allow_null=True)
    time_last_update_utc = serializers.CharField(required=False, allow_null=True)
    rates = serializers.DictField(child=serializers.FloatField())
