from django.db import models


class Supplier(models.Model):
    code = models.CharField(max_length=20, unique=True)
    display_name = models.CharField(max_length=255, blank=True, default='')
    is_active = models.BooleanField(default=True)
    auto_import = models.BooleanField(default=True)
    last_sync_at = models.DateTimeField(null=True, blank=True)
    last_sync_status = models.CharField(max_length=20, blank=True, default='never')
    last_sync_message = models.TextField(blank=True, default='')

    class Meta:
        ordering = ['code']

    def __str__(self):
        return f"{self.code} ({self.display_name})"


class Category(models.Model):
    code = models.CharField(max_length=50, unique=True)
    name = models.JSONField(default=dict)
    parent = models.ForeignKey(
        'self', null=True, blank=True, on_delete=models.SET_NULL, related_name='children'
    )

    class Meta:
        verbose_name_plural = 'categories'

    def __str__(self):
        return self.code


class MediaAsset(models.Model):
    name = models.CharField(max_length=255, unique=True)
    url = models.URLField(max_length=1000)
    ext = models.CharField(max_length=10)
    mime = models.CharField(max_length=100)
    size_kb = models.FloatField(default=0)
    caption = models.TextField(blank=True, default='')
    alternative_text = models.CharField(max_length=255, blank=True, default='')
    provider_metadata = models.JSONField(default=dict)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name


class ParentProduct(models.Model):
    sku = models.CharField(max_length=100, unique=True)
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name='products')
    a_number = models.CharField(max_length=50, blank=True, default='')
    supplier_sku = models.CharField(max_length=100, blank=True, default='')
    supplier_name = models.CharField(max_length=255, blank=True, default='')
    brand = models.CharField(max_length=255, blank=True, default='')
    category = models.CharField(max_length=255, blank=True, default='')
    default_products = models.CharField(max_length=100, blank=True, default='')
    variant_count = models.PositiveIntegerField(default=0)
    content_hash = models.CharField(max_length=64, blank=True, default='')
    customs_tariff_number = models.CharField(max_length=50, blank=True, default='')
    battery_information = models.TextField(blank=True, default='')
    required_certificates = models.TextField(blank=True, default='')
    name = models.JSONField(default=dict)
    description = models.JSONField(default=dict)
    weight = models.FloatField(null=True, blank=True)
    dimensions_length = models.FloatField(null=True, blank=True)
    dimensions_height = models.FloatField(null=True, blank=True)
    dimensions_width = models.FloatField(null=True, blank=True)
    dimensions_depth = models.FloatField(null=True, blank=True)
    dimensions_diameter = models.FloatField(null=True, blank=True)
    last_synced_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.sku} (hash={self.content_hash[:8]}...)"


class ProductVariant(models.Model):
    parent = models.ForeignKey(ParentProduct, on_delete=models.CASCADE, related_name='variants')
    sku = models.CharField(max_length=100)
    name = models.JSONField(default=dict)
    description = models.JSONField(default=dict)
    short_description = models.JSONField(default=dict)
    meta_name = models.JSONField(default=dict)
    material = models.JSONField(default=dict)
    color = models.CharField(max_length=255, blank=True, default='')
    size = models.CharField(max_length=100, blank=True, default='')
    supplier_search_color = models.CharField(max_length=255, blank=True, default='')
    supplier_color_code = models.CharField(max_length=100, blank=True, default='')
    hex_color = models.CharField(max_length=50, blank=True, default='')
    country_of_origin = models.CharField(max_length=100, blank=True, default='')
    production_time = models.CharField(max_length=255, blank=True, default='')
    compliance = models.TextField(blank=True, default='')
    imprint_required = models.BooleanField(default=False)
    fragile = models.BooleanField(default=False)
    usb_item = models.BooleanField(default=False)
    eco = models.BooleanField(default=False)
    new_product = models.BooleanField(default=False)
    sizes_for_color = models.JSONField(default=list)
    is_primary_for_color = models.BooleanField(default=True)
    is_service_base = models.BooleanField(default=False)
    embroidery_sizes = models.JSONField(null=True, blank=True)
    primary_image = models.ForeignKey(
        MediaAsset, null=True, blank=True, on_delete=models.SET_NULL, related_name='+'
    )
    gallery_images = models.JSONField(default=list)
    weight = models.FloatField(null=True, blank=True)
    dimensions_length = models.FloatField(null=True, blank=True)
    dimensions_height = models.FloatField(null=True, blank=True)
    dimensions_width = models.FloatField(null=True, blank=True)
    dimensions_depth = models.FloatField(null=True, blank=True)
    dimensions_diameter = models.FloatField(null=True, blank=True)
    last_synced_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['parent', 'sku'], name='unique_variant_sku_per_parent'),
        ]

    def __str__(self):
        return self.sku
