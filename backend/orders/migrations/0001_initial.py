from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('rider_id', models.BigIntegerField(db_index=True)),
                ('driver_id', models.BigIntegerField(blank=True, db_index=True, null=True)),
                ('pickup_location', models.TextField()),
                ('dropoff_location', models.TextField()),
                ('price', models.DecimalField(decimal_places=2, max_digits=12)),
                ('distance_km', models.DecimalField(decimal_places=2, max_digits=8)),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('ACCEPTED', 'Accepted'), ('ARRIVED', 'Driver Arrived'), ('IN_PROGRESS', 'In Progress'), ('COMPLETED', 'Completed'), ('CANCELLED', 'Cancelled')], default='PENDING', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'orders',
                'ordering': ['-created_at', '-id'],
                'indexes': [models.Index(fields=['rider_id', '-created_at'], name='orders_rider_created_idx')],
                'constraints': [models.CheckConstraint(condition=models.Q(models.Q(('driver_id__isnull', True), ('status', 'PENDING')), models.Q(('driver_id__isnull', False), ('status__in', ['ACCEPTED', 'ARRIVED', 'IN_PROGRESS', 'COMPLETED'])), ('status', 'CANCELLED'), _connector='OR'), name='orders_driver_matches_status')],
            },
        ),
    ]
