"""
Product configuration calculator.

Pure functions from `(product snapshot, selection) -> quote`. Nothing here
touches the database: `apps.products.services.CatalogService` loads the
snapshots, so the pricing and stock rules can be tested in isolation.

A selection maps a component type ("color") to the id of the chosen variant.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from apps.common.types import Cents, ComponentType, Err, Ok, Result
from apps.pricing.services import PricingContext, display_price

Selection = Mapping[ComponentType, str]

# ===============================================================================
# ERRORS
# ===============================================================================


class CatalogError(Exception):
    """Caller referenced catalog data that does not exist"""


class UnknownProductError(CatalogError, LookupError):
    def __init__(self, product_id: object) -> None:
        super().__init__(f"Unknown product: {product_id}")
        self.product_id = product_id


class UnknownComponentError(CatalogError, LookupError):
    def __init__(self, component_type: str, variant_id: object, reason: str = "not offered by this product") -> None:
        super().__init__(f"Unknown component {component_type}={variant_id}: {reason}")
        self.component_type = component_type
        self.variant_id = variant_id


# ===============================================================================
# SNAPSHOTS
# ===============================================================================


@dataclass(frozen=True)
class ImageSnapshot:
    url: str
    is_primary: bool = False
    sort_order: int = 0


@dataclass(frozen=True)
class VariantSnapshot:
    id: str
    sku: str
    name: str
    component_type: ComponentType
    component_value: str
    selling_price_cents: Cents
    stock_quantity: int
    merchant_price_cents: Cents | None = None
    is_active: bool = True
    images: tuple[ImageSnapshot, ...] = ()

    @property
    def is_available(self) -> bool:
        return self.stock_quantity > 0

    def price_for(self, context: PricingContext | None = None) -> Cents:
        if context is None:
            return self.selling_price_cents
        return display_price(self.selling_price_cents, self.merchant_price_cents, context)


@dataclass(frozen=True)
class LinkSnapshot:
    variant: VariantSnapshot
    is_required: bool = False
    is_default: bool = False
    display_order: int = 0


@dataclass(frozen=True)
class ProductSnapshot:
    id: str
    name: str
    is_active: bool = True
    links: tuple[LinkSnapshot, ...] = ()
    images: tuple[ImageSnapshot, ...] = ()


# ===============================================================================
# GROUPS
# ===============================================================================


@dataclass(frozen=True)
class ComponentOption:
    variant: VariantSnapshot
    is_default: bool
    display_order: int

    @property
    def is_available(self) -> bool:
        """Out-of-stock options stay listed but are rendered disabled"""
        return self.variant.is_available


@dataclass(frozen=True)
class ComponentGroup:
    component_type: ComponentType
    is_required: bool
    options: tuple[ComponentOption, ...]

    def option_for(self, variant_id: str) -> ComponentOption | None:
        for option in self.options:
            if option.variant.id == variant_id:
                return option
        return None

    @property
    def default_option(self) -> ComponentOption | None:
        for option in self.options:
            if option.is_default:
                return option
        return self.options[0] if self.options else None


def component_groups(product: ProductSnapshot) -> tuple[ComponentGroup, ...]:
    """
    Group the product's active variants by component type.

    Options keep their declared display order (ties keep link order); groups
    are ordered by their first option. A group is required when any of its
    links is required.
    """
    active_links = [link for link in product.links if link.variant.is_active]
    ordered = sorted(active_links, key=lambda link: link.display_order)

    buckets: dict[ComponentType, list[LinkSnapshot]] = {}
    for link in ordered:
        buckets.setdefault(link.variant.component_type, []).append(link)

    return tuple(
        ComponentGroup(
            component_type=component_type,
            is_required=any(link.is_required for link in links),
            options=tuple(
                ComponentOption(variant=link.variant, is_default=link.is_default, display_order=link.display_order)
                for link in links
            ),
        )
        for component_type, links in buckets.items()
    )


def default_selection(product: ProductSnapshot) -> dict[ComponentType, str]:
    """The `is_default` option of every group, else the group's first option"""
    selection: dict[ComponentType, str] = {}
    for group in component_groups(product):
        option = group.default_option
        if option is not None:
            selection[group.component_type] = option.variant.id
    return selection


# ===============================================================================
# QUOTE
# ===============================================================================


@dataclass(frozen=True)
class QuoteComponent:
    component_type: ComponentType
    variant_id: str
    sku: str
    component_value: str
    price_cents: Cents
    stock_quantity: int


@dataclass(frozen=True)
class ConfigurationQuote:
    product_id: str
    total_price_cents: Cents
    available_stock: int
    image_url: str | None
    components: tuple[QuoteComponent, ...] = field(default_factory=tuple)

    @property
    def is_purchasable(self) -> bool:
        return self.available_stock > 0

    @property
    def selection(self) -> dict[ComponentType, str]:
        return {component.component_type: component.variant_id for component in self.components}


@dataclass(frozen=True)
class ConfigurationIncomplete:
    """A required group has no selection yet; no price is available"""

    product_id: str
    missing_groups: tuple[ComponentType, ...]

    @property
    def message(self) -> str:
        return f"Select an option for: {', '.join(self.missing_groups)}"


def resolve_image(product: ProductSnapshot, selected: Iterable[VariantSnapshot]) -> str | None:
    """
    Image for a configuration, first match wins:

    1. the primary image of a selected variant (in selection order)
    2. the first image of a selected variant
    3. the product's primary image
    4. no image
    """
    variants = list(selected)

    for variant in variants:
        for image in _ordered(variant.images):
            if image.is_primary:
                return image.url

    for variant in variants:
        images = _ordered(variant.images)
        if images:
            return images[0].url

    for image in _ordered(product.images):
        if image.is_primary:
            return image.url

    return None


def _ordered(images: Iterable[ImageSnapshot]) -> list[ImageSnapshot]:
    return sorted(images, key=lambda image: image.sort_order)


def _resolve_selected(product: ProductSnapshot, selection: Selection) -> list[tuple[ComponentGroup, VariantSnapshot]]:
    groups = {group.component_type: group for group in component_groups(product)}
    all_variants = {link.variant.id: link.variant for link in product.links}

    resolved: list[tuple[ComponentGroup, VariantSnapshot]] = []
    for component_type, raw_variant_id in selection.items():
        variant_id = str(raw_variant_id)
        group = groups.get(component_type)
        if group is None:
            raise UnknownComponentError(component_type, variant_id, "product has no such component group")
        option = group.option_for(variant_id)
        if option is None:
            variant = all_variants.get(variant_id)
            if variant is not None and not variant.is_active:
                raise UnknownComponentError(component_type, variant_id, "variant is inactive")
            if variant is not None:
                raise UnknownComponentError(component_type, variant_id, f"variant belongs to {variant.component_type}")
            raise UnknownComponentError(component_type, variant_id)
        resolved.append((group, option.variant))
    return resolved


def quote_configuration(
    product: ProductSnapshot,
    selection: Selection,
    context: PricingContext | None = None,
) -> Result[ConfigurationQuote, ConfigurationIncomplete]:
    """
    Price and stock for one exact configuration.

    Total is the sum of the selected variants' prices (merchant prices when
    the context shows them), stock is the minimum stock of the selected
    variants, and an empty selection has stock 0. Unknown groups or variants
    raise UnknownComponentError; missing required groups return
    Err(ConfigurationIncomplete).
    """
    resolved = _resolve_selected(product, selection)

    selected_types = {group.component_type for group, _variant in resolved}
    missing = tuple(
        group.component_type
        for group in component_groups(product)
        if group.is_required and group.component_type not in selected_types
    )
    if missing:
        return Err(ConfigurationIncomplete(product_id=product.id, missing_groups=missing))

    variants = [variant for _group, variant in resolved]
    components = tuple(
        QuoteComponent(
            component_type=group.component_type,
            variant_id=variant.id,
            sku=variant.sku,
            component_value=variant.component_value,
            price_cents=variant.price_for(context),
            stock_quantity=variant.stock_quantity,
        )
        for group, variant in resolved
    )

    return Ok(
        ConfigurationQuote(
            product_id=product.id,
            total_price_cents=sum(component.price_cents for component in components),
            available_stock=min((variant.stock_quantity for variant in variants), default=0),
            image_url=resolve_image(product, variants),
            components=components,
        )
    )

