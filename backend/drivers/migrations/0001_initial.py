import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='DriverAvailability',
            fields=[
                ('driver_id', models.BigIntegerField(primary_key=True, serialize=False)),
                ('is_online', models.BooleanField(default=False)),
                ('latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('last_updated', models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                'db_table': 'driver_availability',
                'ordering': ['driver_id'],
                'verbose_name_plural': 'driver availability',
            },
        ),
    ]
