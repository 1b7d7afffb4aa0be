"""
Product Catalog models for the Autoparts Commerce Platform
Configurable products built from interchangeable, independently priced and
stocked component variants (color, storage, size ...).
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import ClassVar

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models.query import QuerySet
from django.utils.translation import gettext_lazy as _

from apps.common.money import from_cents

logger = logging.getLogger(__name__)

MIN_FITMENT_YEAR = 1900
MAX_FITMENT_YEAR = 2100


class ProductQuerySet(models.QuerySet["Product"]):
    def active(self) -> ProductQuerySet:
        return self.filter(is_active=True)

    def featured(self) -> ProductQuerySet:
        return self.filter(is_active=True, is_featured=True)

    def fitting_year(self, year: int) -> ProductQuerySet:
        """Products whose fitment range includes `year` (open ends match everything)"""
        return self.filter(
            models.Q(year_from__isnull=True) | models.Q(year_from__lte=year),
            models.Q(year_to__isnull=True) | models.Q(year_to__gte=year),
        )


class Product(models.Model):
    """
    Base product identity. Prices and stock live on the attached component
    variants; a product has no price of its own.
    """

    # Use UUID for better security and referencing
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Basic Information
    slug = models.SlugField(unique=True, max_length=100, help_text=_("URL-friendly identifier"))
    name = models.CharField(max_length=200, help_text=_("Display name for customers"))
    description = models.TextField(blank=True, help_text=_("Detailed product description"))
    brand = models.CharField(max_length=100, blank=True)
    vehicle_model = models.CharField(max_length=100, blank=True, help_text=_("Vehicle model this part fits"))

    # Fitment range - open ended when blank
    year_from = models.PositiveIntegerField(null=True, blank=True, help_text=_("First model year this part fits"))
    year_to = models.PositiveIntegerField(null=True, blank=True, help_text=_("Last model year this part fits"))

    # Status and availability
    is_active = models.BooleanField(default=True, help_text=_("Whether product is available for purchase"))
    is_featured = models.BooleanField(default=False, help_text=_("Show prominently on storefront"))

    # Display and ordering
    sort_order = models.PositiveIntegerField(default=0, help_text=_("Display order (lower numbers first)"))

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ProductQuerySet.as_manager()

    class Meta:
        db_table = "products"
        verbose_name = _("Product")
        verbose_name_plural = _("Products")
        ordering: ClassVar[tuple[str, ...]] = ("sort_order", "name")
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["is_active", "is_featured"]),
            models.Index(fields=["year_from", "year_to"]),
            models.Index(fields=["sort_order"]),
        )

    def __str__(self) -> str:
        return self.name

    def clean(self) -> None:
        super().clean()
        for field_name in ("year_from", "year_to"):
            year = getattr(self, field_name)
            if year is not None and not MIN_FITMENT_YEAR <= year <= MAX_FITMENT_YEAR:
                raise ValidationError({field_name: _("Year must be between 1900 and 2100")})
        if self.year_from is not None and self.year_to is not None and self.year_from > self.year_to:
            raise ValidationError({"year_to": _("Fitment end year cannot be before the start year")})

    def fits_year(self, year: int) -> bool:
        if self.year_from is not None and year < self.year_from:
            return False
        return not (self.year_to is not None and year > self.year_to)

    def get_primary_image(self) -> ProductImage | None:
        return self.images.filter(is_primary=True).order_by("sort_order", "created_at").first()


class ProductImage(models.Model):
    """Product-level image, used when no selected component carries one"""

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="images")
    image_url = models.URLField(max_length=500)
    alt_text = models.CharField(max_length=255, blank=True)
    is_primary = models.BooleanField(default=False)
    sort_order = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "product_images"
        ordering: ClassVar[tuple[str, ...]] = ("sort_order", "created_at")

    def __str__(self) -> str:
        return f"{self.product_id}: {self.image_url}"


class ComponentVariant(models.Model):
    """
    An interchangeable part of a configurable product. Variants sharing a
    `component_type` form one selection group on each product they are
    linked to.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    sku = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=200)
    component_type = models.CharField(max_length=50, help_text=_("Selection group key, e.g. 'color'"))
    component_value = models.CharField(max_length=100, help_text=_("Option shown in the group, e.g. 'Red'"))

    # Pricing in cents
    cost_price_cents = models.BigIntegerField(default=0, validators=[MinValueValidator(0)])
    selling_price_cents = models.BigIntegerField(
        default=0,
        validators=[MinValueValidator(0)],
        help_text=_("Retail price added to the configuration total (0 = included)"),
    )
    merchant_price_cents = models.BigIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(0)],
        help_text=_("Wholesale price for merchant customers; blank or 0 falls back to the retail price"),
    )

    # Inventory
    stock_quantity = models.PositiveIntegerField(default=0)
    reorder_level = models.PositiveIntegerField(default=0, help_text=_("Stock level that triggers a restock warning"))

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    # Private attributes for signal handling
    _old_stock_quantity: int | None = None

    class Meta:
        db_table = "component_variants"
        verbose_name = _("Component Variant")
        verbose_name_plural = _("Component Variants")
        ordering: ClassVar[tuple[str, ...]] = ("component_type", "name")
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["component_type", "is_active"]),
            models.Index(fields=["stock_quantity"]),
        )
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(
                condition=models.Q(selling_price_cents__gte=0),
                name="component_variant_selling_price_non_negative",
            ),
        )

    def __str__(self) -> str:
        return f"{self.component_type}: {self.component_value} ({self.sku})"

    @property
    def selling_price(self) -> Decimal:
        """Return selling price in currency units (e.g., 29.99)"""
        return from_cents(self.selling_price_cents)

    @property
    def merchant_price(self) -> Decimal | None:
        if self.merchant_price_cents is None:
            return None
        return from_cents(self.merchant_price_cents)

    @property
    def is_in_stock(self) -> bool:
        return self.stock_quantity > 0

    @property
    def needs_restock(self) -> bool:
        return self.stock_quantity <= self.reorder_level


class ComponentVariantImage(models.Model):
    variant = models.ForeignKey(ComponentVariant, on_delete=models.CASCADE, related_name="images")
    image_url = models.URLField(max_length=500)
    alt_text = models.CharField(max_length=255, blank=True)
    is_primary = models.BooleanField(default=False)
    sort_order = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "component_variant_images"
        ordering: ClassVar[tuple[str, ...]] = ("sort_order", "created_at")

    def __str__(self) -> str:
        return f"{self.variant_id}: {self.image_url}"


class ProductComponentVariantQuerySet(models.QuerySet["ProductComponentVariant"]):
    def for_product(self, product: Product | uuid.UUID | str) -> ProductComponentVariantQuerySet:
        return self.filter(product=product).select_related("variant").order_by("display_order", "created_at", "pk")


class ProductComponentVariant(models.Model):
    """Attaches a component variant to a product as one option of its group"""

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name="component_links")
    variant = models.ForeignKey(ComponentVariant, on_delete=models.CASCADE, related_name="product_links")
    is_required = models.BooleanField(default=False, help_text=_("The variant's group must be selected to buy"))
    is_default = models.BooleanField(default=False, help_text=_("Preselected option of its group"))
    display_order = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = ProductComponentVariantQuerySet.as_manager()

    class Meta:
        db_table = "product_component_variants"
        ordering: ClassVar[tuple[str, ...]] = ("display_order", "created_at")
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.UniqueConstraint(fields=["product", "variant"], name="unique_product_variant_link"),
        )

    def __str__(self) -> str:
        return f"{self.product_id} -> {self.variant_id}"

    def clean(self) -> None:
        super().clean()
        if not self.is_default or not self.variant_id:
            return
        other_defaults: QuerySet[ProductComponentVariant] = ProductComponentVariant.objects.filter(
            product_id=self.product_id,
            variant__component_type=self.variant.component_type,
            is_default=True,
        ).exclude(pk=self.pk)
        if other_defaults.exists():
            raise ValidationError(
                {"is_default": _("Another %(group)s option is already the default") % {"group": self.variant.component_type}}
            )
