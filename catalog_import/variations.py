"""
Variation Generator Module
Builds the size x frame variation set of a product, with unique SKUs.
"""

import asyncio
import itertools
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set
from loguru import logger

from .exceptions import StoreError
from .models import (
    DEFAULT_FRAME_NAME,
    DEFAULT_SIZE_NAME,
    FRAME_TYPES,
    PRODUCTS,
    SIZES,
    VARIATIONS,
    CandidateProduct,
    FrameType,
    OptionRow,
    ProductVariation,
    Size,
)
from .transformer import option_code, sku_fragment

MAX_SKU_SUFFIX = 999

ConfirmCallback = Callable[[List[Dict[str, Any]]], bool]


class SkuGenerator:
    """
    Issue SKUs that are unique in the store and within the current run.

    Collisions get ``-1``, ``-2``... appended; past 999 a high-resolution
    timestamp is used instead.
    """

    def __init__(self, store, clock: Callable[[], int] = time.time_ns):
        self.store = store
        self.clock = clock
        self.issued: Set[str] = set()
        self._lock = asyncio.Lock()

    @staticmethod
    def base_sku(product_name: str, size_code: str, frame_name: str) -> str:
        """``<product[:8]>-<size code>-<frame[:8]>`` built from lower-case alphanumerics."""
        return '-'.join((
            sku_fragment(product_name, 8),
            sku_fragment(size_code),
            sku_fragment(frame_name, 8),
        ))

    async def _taken(self, sku: str) -> bool:
        return sku in self.issued or await self.store.sku_exists(sku)

    async def generate(self, product_name: str, size_code: str, frame_name: str) -> str:
        """
        Synthesize a unique SKU for one variation.

        Args:
            product_name: Product name
            size_code: Code of the variation's size
            frame_name: Name of the variation's frame type

        Returns:
            A SKU no other variation uses
        """
        base = self.base_sku(product_name, size_code, frame_name)
        async with self._lock:
            sku = base
            counter = 1
            while await self._taken(sku):
                if counter > MAX_SKU_SUFFIX:
                    sku = f"{base}-{self.clock()}"
                    if not await self._taken(sku):
                        break
                    continue
                sku = f"{base}-{counter}"
                counter += 1
            self.issued.add(sku)
        if sku != base:
            logger.debug(f"SKU {base} taken, issued {sku}")
        return sku

    async def reserve(self, sku: str) -> bool:
        """Claim an explicit SKU from the CSV if nobody uses it yet."""
        async with self._lock:
            if await self._taken(sku):
                return False
            self.issued.add(sku)
            return True


@dataclass
class VariationOutcome:
    """What reconciling one product's variations did."""

    created: int = 0
    updated: int = 0
    deleted: int = 0
    skus: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class VariationGenerator:
    """Create, update and prune a product's variations to match the desired set."""

    def __init__(self, store, sku_generator: Optional[SkuGenerator] = None, default_stock: int = 10, prune: bool = True):
        """
        Initialize the generator.

        Args:
            store: Catalog store
            sku_generator: SKU issuer shared across the run
            default_stock: Stock for variations without an inventory column
            prune: Delete variations outside the desired set on CSV import
        """
        self.store = store
        self.skus = sku_generator or SkuGenerator(store)
        self.default_stock = default_stock
        self.prune = prune

    async def size(self, name: str) -> Dict[str, Any]:
        """Get or create a size by name."""
        if name == DEFAULT_SIZE_NAME:
            defaults = Size(name=name, code='default', dimensions='Default size dimensions')
        else:
            defaults = Size(name=name, code=option_code(name), dimensions=f"{name} dimensions")
        row, created = await self.store.ensure_lookup(SIZES, name, defaults.to_row())
        if created:
            logger.info(f"Created size: {name}")
        return row

    async def frame_type(self, name: str) -> Dict[str, Any]:
        """Get or create a frame type by name."""
        material = 'default' if name == DEFAULT_FRAME_NAME else option_code(name)
        defaults = FrameType(name=name, material=material)
        row, created = await self.store.ensure_lookup(FRAME_TYPES, name, defaults.to_row())
        if created:
            logger.info(f"Created frame type: {name}")
        return row

    async def reconcile(self, product: Dict[str, Any], candidate: CandidateProduct) -> VariationOutcome:
        """
        Bring a product's variations in line with an imported record.

        The desired set is every size x frame pair named by the record's
        option rows; an axis the record does not use falls back to the
        default size or frame, so a record without options gets the single
        Default Size x Default Frame variation.

        Args:
            product: Stored product row
            candidate: Record being imported

        Returns:
            VariationOutcome

        A pair whose write fails is reported in ``errors`` and the remaining
        pairs are still written.

        Raises:
            StoreError: if the size, frame or existing-variation lookups fail
        """
        outcome = VariationOutcome()
        size_names = candidate.size_names or [DEFAULT_SIZE_NAME]
        frame_names = candidate.frame_names or [DEFAULT_FRAME_NAME]

        sizes = [await self.size(name) for name in size_names]
        frames = [await self.frame_type(name) for name in frame_names]

        existing = {
            (row['size_id'], row['frame_type_id']): row
            for row in await self.store.select(VARIATIONS, product_id=product['id'])
        }
        desired = set()

        for size, frame in itertools.product(sizes, frames):
            key = (size['id'], frame['id'])
            desired.add(key)
            option = _matching_option(candidate.options, size['name'], frame['name'])
            values = self._variation_values(product, candidate, size, frame, option)

            # A failed pair stays desired, so pruning never removes its stored row
            try:
                if key in existing:
                    await self.store.update(VARIATIONS, existing[key]['id'], values)
                    outcome.updated += 1
                    continue

                sku = await self._sku_for(product['name'], size, frame, option)
                variation = ProductVariation(
                    product_id=product['id'],
                    size_id=size['id'],
                    frame_type_id=frame['id'],
                    sku=sku,
                    **values,
                )
                await self.store.insert(VARIATIONS, variation.to_row())
            except StoreError as e:
                message = f"Variation {size['name']} / {frame['name']} failed: {e}"
                logger.error(f"{product['name']}: {message}")
                outcome.errors.append(message)
                continue
            outcome.created += 1
            outcome.skus.append(sku)

        stale = [row for key, row in existing.items() if key not in desired]
        if stale and self.prune:
            for row in stale:
                await self.store.delete(VARIATIONS, row['id'])
            outcome.deleted = len(stale)
            logger.info(f"Pruned {len(stale)} variations of '{product['name']}'")

        return outcome

    def _variation_values(
        self,
        product: Dict[str, Any],
        candidate: CandidateProduct,
        size: Dict[str, Any],
        frame: Dict[str, Any],
        option: Optional[OptionRow],
    ) -> Dict[str, Any]:
        if option and option.price is not None:
            price = option.price
        else:
            price = variation_price(product.get('base_price'), size, frame)

        if option and option.stock_quantity is not None:
            stock = option.stock_quantity
        elif candidate.stock_quantity is not None:
            stock = candidate.stock_quantity
        else:
            stock = self.default_stock

        values = {
            'price': price,
            'stock_quantity': stock,
            'is_active': candidate.is_active,
        }
        if option and option.weight is not None:
            values['weight'] = option.weight
        if option and option.weight_unit:
            values['weight_unit'] = option.weight_unit
        return values

    async def _sku_for(
        self,
        product_name: str,
        size: Dict[str, Any],
        frame: Dict[str, Any],
        option: Optional[OptionRow],
    ) -> str:
        if option and option.sku:
            if await self.skus.reserve(option.sku):
                return option.sku
            logger.warning(f"SKU {option.sku} is already in use, generating a new one")
        return await self.skus.generate(product_name, size.get('code') or size['name'], frame['name'])

    async def sync_product_variations(
        self,
        product_id: str,
        size_ids: List[str],
        frame_type_ids: List[str],
        confirm: Optional[ConfirmCallback] = None,
    ) -> VariationOutcome:
        """
        Apply a size/frame selection made in the product editor.

        Missing pairs are created at base price plus adjustments. Pairs no
        longer selected are deleted only when ``confirm`` is given and
        returns True for them. Selecting only sizes or only frames saves
        nothing and returns a warning.

        Args:
            product_id: Product being edited
            size_ids: Selected size ids
            frame_type_ids: Selected frame type ids
            confirm: Asked before deleting variations, with the rows to delete

        Returns:
            VariationOutcome
        """
        outcome = VariationOutcome()
        if bool(size_ids) != bool(frame_type_ids):
            message = 'Select both sizes and frame types to create variations; variations were not changed'
            logger.warning(message)
            outcome.warnings.append(message)
            return outcome

        product = await self.store.find_one(PRODUCTS, id=product_id)
        if product is None:
            raise StoreError(f"No product with id {product_id}", status_code=404)

        sizes = [await self._require(SIZES, size_id) for size_id in size_ids]
        frames = [await self._require(FRAME_TYPES, frame_id) for frame_id in frame_type_ids]
        existing = {
            (row['size_id'], row['frame_type_id']): row
            for row in await self.store.select(VARIATIONS, product_id=product_id)
        }
        desired = {(size['id'], frame['id']) for size, frame in itertools.product(sizes, frames)}

        stale = [row for key, row in existing.items() if key not in desired]
        if stale:
            if confirm is not None and confirm(stale):
                for row in stale:
                    await self.store.delete(VARIATIONS, row['id'])
                outcome.deleted = len(stale)
            else:
                logger.info(f"Kept {len(stale)} unselected variations (deletion not confirmed)")

        for size, frame in itertools.product(sizes, frames):
            if (size['id'], frame['id']) in existing:
                continue
            sku = await self.skus.generate(product['name'], size.get('code') or size['name'], frame['name'])
            variation = ProductVariation(
                product_id=product_id,
                size_id=size['id'],
                frame_type_id=frame['id'],
                sku=sku,
                price=variation_price(product.get('base_price'), size, frame),
                stock_quantity=self.default_stock,
            )
            await self.store.insert(VARIATIONS, variation.to_row())
            outcome.created += 1
            outcome.skus.append(sku)

        return outcome

    async def _require(self, table: str, row_id: str) -> Dict[str, Any]:
        row = await self.store.find_one(table, id=row_id)
        if row is None:
            raise StoreError(f"No {table} row with id {row_id}", status_code=404)
        return row


def variation_price(base_price: Any, size: Dict[str, Any], frame: Dict[str, Any]) -> float:
    """Base price plus the size and frame price adjustments (missing values count as 0)."""
    total = float(base_price or 0)
    total += float(size.get('price_adjustment') or 0)
    total += float(frame.get('price_adjustment') or 0)
    return round(total, 2)


def _matching_option(options: List[OptionRow], size_name: str, frame_name: str) -> Optional[OptionRow]:
    """Find the option row describing a size/frame pair (unset axes match the defaults)."""
    for option in options:
        if (option.size_name or DEFAULT_SIZE_NAME) == size_name and (option.frame_name or DEFAULT_FRAME_NAME) == frame_name:
            return option
    return None
