"""
Product signals for the Autoparts Commerce Platform
Stock transitions on component variants for catalog monitoring.
"""

from __future__ import annotations

import logging
from typing import Any

from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from .models import ComponentVariant

logger = logging.getLogger(__name__)


@receiver(pre_save, sender=ComponentVariant)
def capture_stock_changes(sender: type[ComponentVariant], instance: ComponentVariant, **kwargs: Any) -> None:
    """
    Capture the stored stock level so post_save can detect transitions.
    """
    if not instance.pk or instance._state.adding:
        instance._old_stock_quantity = None
        return
    instance._old_stock_quantity = (
        ComponentVariant.objects.filter(pk=instance.pk).values_list("stock_quantity", flat=True).first()
    )


@receiver(post_save, sender=ComponentVariant)
def log_stock_transitions(sender: type[ComponentVariant], instance: ComponentVariant, created: bool, **kwargs: Any) -> None:
    """Log variants selling out, coming back in stock, or dropping to their reorder level"""
    if created:
        return

    old_stock = instance._old_stock_quantity
    if old_stock is None or old_stock == instance.stock_quantity:
        return

    extra = {
        "variant_id": str(instance.pk),
        "sku": instance.sku,
        "old_stock": old_stock,
        "new_stock": instance.stock_quantity,
    }
    if old_stock > 0 and instance.stock_quantity == 0:
        logger.warning(f"📦 [Catalog] {instance.sku} is out of stock", extra=extra)
    elif old_stock == 0 and instance.stock_quantity > 0:
        logger.info(f"📦 [Catalog] {instance.sku} is back in stock ({instance.stock_quantity})", extra=extra)
    elif instance.needs_restock and old_stock > instance.reorder_level:
        logger.info(
            f"📦 [Catalog] {instance.sku} reached its reorder level ({instance.stock_quantity})",
            extra=extra,
        )
