import django.core.validators
import django.db.models.functions.text
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Country",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("capital", models.CharField(blank=True, max_length=255, null=True)),
                ("region", models.CharField(blank=True, db_index=True, max_length=100, null=True)),
                ("population", models.BigIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ("currency_code", models.CharField(blank=True, db_index=True, max_length=10, null=True)),
                ("exchange_rate", models.FloatField(blank=True, null=True)),
                ("estimated_gdp", models.FloatField(default=0)),
                ("flag_url", models.URLField(blank=True, max_length=500, null=True)),
                ("last_refreshed_at", models.DateTimeField()),
            ],
            options={
                "verbose_name_plural": "countries",
                "db_table": "countries",
            },
        ),
        migrations.AddConstraint(
            model_name="country",
            constraint=models.UniqueConstraint(
                django.db.models.functions.text.Lower("name"), name="countries_name_ci_unique"
            ),
        ),
    ]
