"""
Catalog services for the Autoparts Commerce Platform.

Loads products and component variants from the ORM into immutable snapshots
and hands them to the pure configuration calculator.
"""

from __future__ import annotations

import logging
import uuid

from django.db.models import Prefetch

from apps.common.decorators import monitor_performance
from apps.common.types import Result
from apps.pricing.services import PricingContext
from apps.products.configuration import (
    ComponentGroup,
    ConfigurationIncomplete,
    ConfigurationQuote,
    ImageSnapshot,
    LinkSnapshot,
    ProductSnapshot,
    Selection,
    UnknownComponentError,
    UnknownProductError,
    VariantSnapshot,
    component_groups,
    default_selection,
    quote_configuration,
)
from apps.products.models import (
    ComponentVariant,
    ComponentVariantImage,
    Product,
    ProductComponentVariant,
    ProductImage,
)

logger = logging.getLogger(__name__)


def _image_snapshot(image: ComponentVariantImage | ProductImage) -> ImageSnapshot:
    return ImageSnapshot(url=image.image_url, is_primary=image.is_primary, sort_order=image.sort_order)


def variant_snapshot(variant: ComponentVariant) -> VariantSnapshot:
    return VariantSnapshot(
        id=str(variant.pk),
        sku=variant.sku,
        name=variant.name,
        component_type=variant.component_type,
        component_value=variant.component_value,
        selling_price_cents=variant.selling_price_cents,
        merchant_price_cents=variant.merchant_price_cents,
        stock_quantity=variant.stock_quantity,
        is_active=variant.is_active,
        images=tuple(_image_snapshot(image) for image in variant.images.all()),
    )


def _is_uuid(value: object) -> bool:
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


class CatalogService:
    """Product/component catalog boundary"""

    @staticmethod
    def get_product(product_id: uuid.UUID | str, include_inactive: bool = False) -> ProductSnapshot:
        """Load a product with its component links, variants and images"""
        if not _is_uuid(product_id):
            raise UnknownProductError(product_id)

        queryset = Product.objects.prefetch_related(
            "images",
            Prefetch(
                "component_links",
                queryset=ProductComponentVariant.objects.select_related("variant")
                .prefetch_related("variant__images")
                .order_by("display_order", "created_at", "pk"),
            ),
        )
        if not include_inactive:
            queryset = queryset.filter(is_active=True)

        try:
            product = queryset.get(pk=product_id)
        except Product.DoesNotExist as e:
            raise UnknownProductError(product_id) from e

        return ProductSnapshot(
            id=str(product.pk),
            name=product.name,
            is_active=product.is_active,
            links=tuple(
                LinkSnapshot(
                    variant=variant_snapshot(link.variant),
                    is_required=link.is_required,
                    is_default=link.is_default,
                    display_order=link.display_order,
                )
                for link in product.component_links.all()
            ),
            images=tuple(_image_snapshot(image) for image in product.images.all()),
        )

    @staticmethod
    def get_variant(variant_id: uuid.UUID | str) -> VariantSnapshot:
        if not _is_uuid(variant_id):
            raise UnknownComponentError("variant", variant_id, "no such variant")
        try:
            variant = ComponentVariant.objects.prefetch_related("images").get(pk=variant_id)
        except ComponentVariant.DoesNotExist as e:
            raise UnknownComponentError("variant", variant_id, "no such variant") from e
        return variant_snapshot(variant)

    @classmethod
    def component_groups(cls, product_id: uuid.UUID | str) -> tuple[ComponentGroup, ...]:
        """Selection groups for display; out-of-stock options are kept with is_available=False"""
        return component_groups(cls.get_product(product_id))

    @classmethod
    @monitor_performance(max_duration_seconds=2.0, alert_threshold=0.5)
    def quote(
        cls,
        product_id: uuid.UUID | str,
        selection: Selection,
        context: PricingContext | None = None,
    ) -> Result[ConfigurationQuote, ConfigurationIncomplete]:
        product = cls.get_product(product_id)
        result = quote_configuration(product, selection, context)
        if result.is_err():
            logger.debug(
                f"🧩 [Catalog] Incomplete configuration for {product.name}: {result.unwrap_err().missing_groups}",
                extra={"product_id": product.id},
            )
        return result

    @classmethod
    def default_quote(
        cls, product_id: uuid.UUID | str, context: PricingContext | None = None
    ) -> Result[ConfigurationQuote, ConfigurationIncomplete]:
        """Quote for the deterministic default configuration of a product"""
        product = cls.get_product(product_id)
        return quote_configuration(product, default_selection(product), context)
