import django.core.validators
from django.db import migrations, models


SERIES_VALIDATOR = django.core.validators.RegexValidator(
    code="invalid_series",
    message="Série deve ter 4 caracteres entre A-Z e 0-9.",
    regex="^[A-Z0-9]{4}\\Z",
)


def _series_field(default=None):
    if default is None:
        return models.CharField(max_length=4, validators=[SERIES_VALIDATOR])
    return models.CharField(default=default, max_length=4, validators=[SERIES_VALIDATOR])


class Migration(migrations.Migration):

    dependencies = [
        ("fiscal", "0001_initial"),
    ]

    operations = [
        migrations.AlterField(
            model_name="tenantfiscalprofile",
            name="default_invoice_series",
            field=_series_field("F001"),
        ),
        migrations.AlterField(
            model_name="tenantfiscalprofile",
            name="default_receipt_series",
            field=_series_field("B001"),
        ),
        migrations.AlterField(
            model_name="tenantfiscalprofile",
            name="default_credit_note_series",
            field=_series_field("FC01"),
        ),
        migrations.AlterField(
            model_name="tenantfiscalprofile",
            name="default_debit_note_series",
            field=_series_field("FD01"),
        ),
        migrations.AlterField(
            model_name="tenantfiscalprofile",
            name="default_summary_series",
            field=_series_field("RC01"),
        ),
        migrations.AlterField(
            model_name="tenantfiscalprofile",
            name="default_void_series",
            field=_series_field("RA01"),
        ),
        migrations.AlterField(
            model_name="fiscaldocument",
            name="series",
            field=_series_field(),
        ),
        migrations.AddField(
            model_name="fiscaldocument",
            name="authority_receipt",
            field=models.TextField(blank=True, null=True),
        ),
    ]
