"""
Upsert Engine Module
Creates or updates the product row of an imported record.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from loguru import logger

from .models import BRANDS, CATEGORIES, PRODUCTS, Brand, CandidateProduct, Category, Product, utc_now

META_DESCRIPTION_LENGTH = 200


@dataclass
class UpsertOutcome:
    """Stored product row and what it took to get there."""

    product: Dict[str, Any]
    created: bool
    categories_created: int = 0
    brands_created: int = 0


class UpsertEngine:
    """Find an imported product in the store, then create or update it."""

    def __init__(self, store):
        self.store = store

    async def find_existing(self, candidate: CandidateProduct) -> Optional[Dict[str, Any]]:
        """
        Look up the stored product a record refers to.

        Shopify records are matched on their handle first, then on name;
        standard records on name only. Matching is exact and case-sensitive.

        Args:
            candidate: Record being imported

        Returns:
            Stored product row or None
        """
        if candidate.is_shopify and candidate.handle:
            product = await self.store.find_one(PRODUCTS, meta_keywords=candidate.handle)
            if product:
                return product
        return await self.store.find_one(PRODUCTS, name=candidate.name)

    async def category(self, name: Optional[str]) -> Tuple[Optional[str], bool]:
        """Get or create a category, returning (id, created)."""
        if not name:
            return None, False
        defaults = Category(name=name, description=f"Products in the {name} category")
        row, created = await self.store.ensure_lookup(CATEGORIES, name, defaults.to_row())
        if created:
            logger.info(f"Created category: {name}")
        return row['id'], created

    async def brand(self, name: Optional[str]) -> Tuple[Optional[str], bool]:
        """Get or create a brand, returning (id, created)."""
        if not name:
            return None, False
        defaults = Brand(name=name, description=f"Products by {name}")
        row, created = await self.store.ensure_lookup(BRANDS, name, defaults.to_row())
        if created:
            logger.info(f"Created brand: {name}")
        return row['id'], created

    def product_fields(
        self,
        candidate: CandidateProduct,
        category_id: Optional[str],
        brand_id: Optional[str],
    ) -> Dict[str, Any]:
        """Mutable product columns derived from a record."""
        fields = {
            'description': candidate.description,
            'base_price': candidate.price,
            'is_featured': candidate.is_featured,
            'is_active': candidate.is_active,
            'meta_title': candidate.name,
            'meta_description': candidate.description[:META_DESCRIPTION_LENGTH],
            'updated_at': utc_now(),
        }
        if category_id:
            fields['category_id'] = category_id
        if brand_id:
            fields['brand_id'] = brand_id
        if candidate.handle:
            fields['meta_keywords'] = candidate.handle
        return fields

    async def upsert(self, candidate: CandidateProduct) -> UpsertOutcome:
        """
        Create or update the product of one record.

        Updates leave ``name`` and ``created_at`` alone: a Shopify product
        found by handle keeps its stored name even if the export renamed it.

        Args:
            candidate: Record being imported

        Returns:
            UpsertOutcome with the stored row

        Raises:
            StoreError: if the store rejects a call
        """
        category_id, category_created = await self.category(candidate.category)
        brand_id, brand_created = await self.brand(candidate.brand)
        fields = self.product_fields(candidate, category_id, brand_id)

        existing = await self.find_existing(candidate)
        if existing:
            product = await self.store.update(PRODUCTS, existing['id'], fields)
            product = dict(existing, **product)
            logger.info(f"Updated product: {product['name']}")
            created = False
        else:
            new_product = Product(name=candidate.name, **fields)
            new_product.created_at = new_product.updated_at
            product = await self.store.insert(PRODUCTS, new_product.to_row())
            logger.info(f"Created product: {candidate.name}")
            created = True

        return UpsertOutcome(
            product=product,
            created=created,
            categories_created=int(category_created),
            brands_created=int(brand_created),
        )

    async def link_primary_image(self, product_id: str, image_url: str) -> None:
        """Point the product's main image at its primary uploaded image."""
        await self.store.update(PRODUCTS, product_id, {'image_url': image_url})
