# ===============================================================================
# CATALOG SERVICE TESTS
# ===============================================================================

import logging
import uuid

import pytest
from django.core.exceptions import ValidationError

from apps.pricing.services import PricingContext
from apps.products.configuration import UnknownComponentError, UnknownProductError
from apps.products.models import Product
from apps.products.services import CatalogService
from tests.factories.catalog_factories import (
    add_product_image,
    add_variant_image,
    create_color_product,
    create_product,
    create_variant,
    link_variant,
)


@pytest.mark.django_db
class TestCatalogService:
    def test_red_blue_scenario(self):
        product, red, blue = create_color_product()

        quote = CatalogService.quote(product.pk, {"color": str(blue.pk)}).unwrap()

        assert quote.total_price_cents == 1500
        assert quote.available_stock == 0
        group = CatalogService.component_groups(product.pk)[0]
        assert [(option.variant.component_value, option.is_available) for option in group.options] == [
            ("Red", True),
            ("Blue", False),
        ]

    def test_merchant_quote_uses_merchant_price(self):
        product, red, _blue = create_color_product()

        quote = CatalogService.quote(product.pk, {"color": str(red.pk)}, PricingContext.for_customer_class("merchant"))

        assert quote.unwrap().total_price_cents == 800

    def test_default_quote_uses_default_selection(self):
        product, red, blue = create_color_product()
        product.component_links.filter(variant=blue).update(is_default=True)

        assert CatalogService.default_quote(product.pk).unwrap().selection == {"color": str(blue.pk)}

    def test_unknown_product_raises(self):
        with pytest.raises(UnknownProductError):
            CatalogService.get_product(uuid.uuid4())

    def test_malformed_product_id_raises(self):
        with pytest.raises(UnknownProductError):
            CatalogService.get_product("not-a-uuid")

    def test_inactive_product_is_unknown_unless_requested(self):
        product = create_product(is_active=False)

        with pytest.raises(UnknownProductError):
            CatalogService.get_product(product.pk)
        assert CatalogService.get_product(product.pk, include_inactive=True).id == str(product.pk)

    def test_variant_from_another_product_raises(self):
        product, _red, _blue = create_color_product()
        stranger = create_variant("color", "Green")

        with pytest.raises(UnknownComponentError):
            CatalogService.quote(product.pk, {"color": str(stranger.pk)})

    def test_get_variant(self):
        variant = create_variant("color", "Green", selling_price_cents=1200)

        assert CatalogService.get_variant(variant.pk).selling_price_cents == 1200
        with pytest.raises(UnknownComponentError):
            CatalogService.get_variant(uuid.uuid4())

    def test_image_fallback_to_product_primary(self):
        product, red, _blue = create_color_product()
        add_product_image(product, "https://cdn.autoparts.test/mirror.jpg", is_primary=True)

        quote = CatalogService.quote(product.pk, {"color": str(red.pk)}).unwrap()

        assert quote.image_url == "https://cdn.autoparts.test/mirror.jpg"

    def test_image_prefers_variant_primary(self):
        product, red, _blue = create_color_product()
        add_product_image(product, "https://cdn.autoparts.test/mirror.jpg", is_primary=True)
        add_variant_image(red, "https://cdn.autoparts.test/red.jpg", is_primary=True)

        quote = CatalogService.quote(product.pk, {"color": str(red.pk)}).unwrap()

        assert quote.image_url == "https://cdn.autoparts.test/red.jpg"


@pytest.mark.django_db
class TestProductModels:
    def test_fits_year(self):
        product = create_product(year_from=2015, year_to=2020)

        assert product.fits_year(2015)
        assert product.fits_year(2020)
        assert not product.fits_year(2021)
        assert create_product().fits_year(1990)

    def test_fitting_year_queryset(self):
        fits = create_product(year_from=2015, year_to=2020)
        create_product(year_from=2021)

        assert list(Product.objects.fitting_year(2018)) == [fits]

    def test_inverted_year_range_is_rejected(self):
        product = create_product(year_from=2020, year_to=2015)

        with pytest.raises(ValidationError):
            product.clean()

    def test_only_one_default_per_group(self):
        product = create_product()
        link_variant(product, create_variant("color", "Red"), is_default=True)
        second = link_variant(product, create_variant("color", "Blue"))
        second.is_default = True

        with pytest.raises(ValidationError):
            second.clean()

    def test_stock_transition_is_logged(self, caplog):
        variant = create_variant(stock_quantity=2)
        variant.stock_quantity = 0

        with caplog.at_level(logging.WARNING, logger="apps.products.signals"):
            variant.save()

        assert "out of stock" in caplog.text
