import django.db.models.deletion
from django.db import migrations, models


def _physical_fields():
    return [
        ('weight', models.FloatField(blank=True, null=True)),
        ('dimensions_length', models.FloatField(blank=True, null=True)),
        ('dimensions_height', models.FloatField(blank=True, null=True)),
        ('dimensions_width', models.FloatField(blank=True, null=True)),
        ('dimensions_depth', models.FloatField(blank=True, null=True)),
        ('dimensions_diameter', models.FloatField(blank=True, null=True)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Supplier',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(max_length=20, unique=True)),
                ('display_name', models.CharField(blank=True, default='', max_length=255)),
                ('is_active', models.BooleanField(default=True)),
                ('auto_import', models.BooleanField(default=True)),
                ('last_sync_at', models.DateTimeField(blank=True, null=True)),
                ('last_sync_status', models.CharField(blank=True, default='never', max_length=20)),
                ('last_sync_message', models.TextField(blank=True, default='')),
            ],
            options={
                'ordering': ['code'],
            },
        ),
        migrations.CreateModel(
            name='Category',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(max_length=50, unique=True)),
                ('name', models.JSONField(default=dict)),
                ('parent', models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                    related_name='children', to='catalog_sync.category',
                )),
            ],
            options={
                'verbose_name_plural': 'categories',
            },
        ),
        migrations.CreateModel(
            name='MediaAsset',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255, unique=True)),
                ('url', models.URLField(max_length=1000)),
                ('ext', models.CharField(max_length=10)),
                ('mime', models.CharField(max_length=100)),
                ('size_kb', models.FloatField(default=0)),
                ('caption', models.TextField(blank=True, default='')),
                ('alternative_text', models.CharField(blank=True, default='', max_length=255)),
                ('provider_metadata', models.JSONField(default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name='ParentProduct',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sku', models.CharField(max_length=100, unique=True)),
                ('a_number', models.CharField(blank=True, default='', max_length=50)),
                ('supplier_sku', models.CharField(blank=True, default='', max_length=100)),
                ('supplier_name', models.CharField(blank=True, default='', max_length=255)),
                ('brand', models.CharField(blank=True, default='', max_length=255)),
                ('category', models.CharField(blank=True, default='', max_length=255)),
                ('default_products', models.CharField(blank=True, default='', max_length=100)),
                ('variant_count', models.PositiveIntegerField(default=0)),
                ('content_hash', models.CharField(blank=True, default='', max_length=64)),
                ('customs_tariff_number', models.CharField(blank=True, default='', max_length=50)),
                ('battery_information', models.TextField(blank=True, default='')),
                ('required_certificates', models.TextField(blank=True, default='')),
                ('name', models.JSONField(default=dict)),
                ('description', models.JSONField(default=dict)),
                *_physical_fields(),
                ('last_synced_at', models.DateTimeField(auto_now=True)),
                ('supplier', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name='products', to='catalog_sync.supplier',
                )),
            ],
        ),
        migrations.CreateModel(
            name='ProductVariant',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sku', models.CharField(max_length=100)),
                ('name', models.JSONField(default=dict)),
                ('description', models.JSONField(default=dict)),
                ('short_description', models.JSONField(default=dict)),
                ('meta_name', models.JSONField(default=dict)),
                ('material', models.JSONField(default=dict)),
                ('color', models.CharField(blank=True, default='', max_length=255)),
                ('size', models.CharField(blank=True, default='', max_length=100)),
                ('supplier_search_color', models.CharField(blank=True, default='', max_length=255)),
                ('supplier_color_code', models.CharField(blank=True, default='', max_length=100)),
                ('hex_color', models.CharField(blank=True, default='', max_length=50)),
                ('country_of_origin', models.CharField(blank=True, default='', max_length=100)),
                ('production_time', models.CharField(blank=True, default='', max_length=255)),
                ('compliance', models.TextField(blank=True, default='')),
                ('imprint_required', models.BooleanField(default=False)),
                ('fragile', models.BooleanField(default=False)),
                ('usb_item', models.BooleanField(default=False)),
                ('eco', models.BooleanField(default=False)),
                ('new_product', models.BooleanField(default=False)),
                ('sizes_for_color', models.JSONField(default=list)),
                ('is_primary_for_color', models.BooleanField(default=True)),
                ('is_service_base', models.BooleanField(default=False)),
                ('embroidery_sizes', models.JSONField(blank=True, null=True)),
                ('gallery_images', models.JSONField(default=list)),
                *_physical_fields(),
                ('last_synced_at', models.DateTimeField(auto_now=True)),
                ('parent', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name='variants', to='catalog_sync.parentproduct',
                )),
                ('primary_image', models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                    related_name='+', to='catalog_sync.mediaasset',
                )),
            ],
        ),
        migrations.AddConstraint(
            model_name='productvariant',
            constraint=models.UniqueConstraint(fields=('parent', 'sku'), name='unique_variant_sku_per_parent'),
        ),
    ]
