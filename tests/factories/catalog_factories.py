# ===============================================================================
# TEST FACTORIES FOR CUSTOMERS AND CATALOG
# ===============================================================================

from itertools import count

from apps.customers.models import Customer
from apps.products.models import (
    ComponentVariant,
    ComponentVariantImage,
    Product,
    ProductComponentVariant,
    ProductImage,
)

_sequence = count(1)


def _next() -> int:
    return next(_sequence)


def create_customer(name: str = "Ali Retail", customer_type: str = "normal", **fields) -> Customer:
    """Create a customer with a unique email."""
    n = _next()
    return Customer.objects.create(
        name=name,
        email=fields.pop("email", f"customer{n}@autoparts.test"),
        customer_type=customer_type,
        **fields,
    )


def create_merchant(name: str = "Bengkel Jaya Sdn Bhd", **fields) -> Customer:
    return create_customer(name=name, customer_type="merchant", **fields)


def create_product(name: str = "Side Mirror", **fields) -> Product:
    n = _next()
    return Product.objects.create(slug=fields.pop("slug", f"product-{n}"), name=name, **fields)


def create_variant(  # noqa: PLR0913
    component_type: str = "color",
    component_value: str = "Red",
    selling_price_cents: int = 1000,
    stock_quantity: int = 5,
    merchant_price_cents: int | None = None,
    **fields,
) -> ComponentVariant:
    n = _next()
    return ComponentVariant.objects.create(
        sku=fields.pop("sku", f"SKU-{n:05d}"),
        name=fields.pop("name", f"{component_type} {component_value}"),
        component_type=component_type,
        component_value=component_value,
        selling_price_cents=selling_price_cents,
        merchant_price_cents=merchant_price_cents,
        stock_quantity=stock_quantity,
        **fields,
    )


def link_variant(
    product: Product,
    variant: ComponentVariant,
    is_required: bool = False,
    is_default: bool = False,
    display_order: int = 0,
) -> ProductComponentVariant:
    return ProductComponentVariant.objects.create(
        product=product,
        variant=variant,
        is_required=is_required,
        is_default=is_default,
        display_order=display_order,
    )


def add_variant_image(
    variant: ComponentVariant, url: str, is_primary: bool = False, sort_order: int = 0
) -> ComponentVariantImage:
    return ComponentVariantImage.objects.create(
        variant=variant, image_url=url, is_primary=is_primary, sort_order=sort_order
    )


def add_product_image(product: Product, url: str, is_primary: bool = False, sort_order: int = 0) -> ProductImage:
    return ProductImage.objects.create(product=product, image_url=url, is_primary=is_primary, sort_order=sort_order)


def create_color_product(required: bool = True) -> tuple[Product, ComponentVariant, ComponentVariant]:
    """Product with a Color group: Red (10.00, stock 3) and Blue (15.00, out of stock)"""
    product = create_product()
    red = create_variant("color", "Red", selling_price_cents=1000, stock_quantity=3, merchant_price_cents=800)
    blue = create_variant("color", "Blue", selling_price_cents=1500, stock_quantity=0)
    link_variant(product, red, is_required=required, display_order=1)
    link_variant(product, blue, is_required=required, display_order=2)
    return product, red, blue
