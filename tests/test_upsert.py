"""
Tests for Upsert Engine Module
"""

import asyncio

from catalog_import.models import BRANDS, CATEGORIES, PRODUCTS, CandidateProduct
from catalog_import.store import MemoryCatalogStore
from catalog_import.upsert import UpsertEngine


class TestUpsertEngine:
    """Test cases for UpsertEngine."""

    def setup_method(self):
        """Set up test fixtures."""
        self.store = MemoryCatalogStore()
        self.engine = UpsertEngine(self.store)

    def test_create_then_update_by_name(self):
        first = CandidateProduct(row_number=1, name='Acrylic Painting', price=199.99, category='Paintings')
        second = CandidateProduct(row_number=1, name='Acrylic Painting', price=149.99, category='Paintings')

        async def scenario():
            return await self.engine.upsert(first), await self.engine.upsert(second)

        created, updated = asyncio.run(scenario())

        products = self.store.rows(PRODUCTS)
        assert created.created is True
        assert updated.created is False
        assert len(products) == 1
        assert products[0]['base_price'] == 149.99
        assert products[0]['created_at'] == created.product['created_at']
        assert created.categories_created == 1
        assert updated.categories_created == 0

    def test_name_match_is_case_sensitive(self):
        async def scenario():
            await self.engine.upsert(CandidateProduct(row_number=1, name='Sunset'))
            await self.engine.upsert(CandidateProduct(row_number=2, name='sunset'))

        asyncio.run(scenario())

        assert len(self.store.rows(PRODUCTS)) == 2

    def test_shopify_found_by_handle_keeps_name(self):
        store = MemoryCatalogStore({PRODUCTS: [
            {'id': 'p1', 'name': 'Sunset Print', 'meta_keywords': 'sunset', 'base_price': 10.0},
        ]})
        engine = UpsertEngine(store)
        candidate = CandidateProduct(
            row_number=1, name='Sunset (Renamed)', handle='sunset', price=12.0, source_format='shopify'
        )

        outcome = asyncio.run(engine.upsert(candidate))

        products = store.rows(PRODUCTS)
        assert outcome.created is False
        assert len(products) == 1
        assert products[0]['name'] == 'Sunset Print'
        assert products[0]['base_price'] == 12.0

    def test_shopify_falls_back_to_name(self):
        store = MemoryCatalogStore({PRODUCTS: [{'id': 'p1', 'name': 'Sunset'}]})
        candidate = CandidateProduct(row_number=1, name='Sunset', handle='sunset', source_format='shopify')

        outcome = asyncio.run(UpsertEngine(store).upsert(candidate))

        assert outcome.created is False
        assert store.rows(PRODUCTS)[0]['meta_keywords'] == 'sunset'

    def test_category_and_brand_created_once(self):
        candidates = [
            CandidateProduct(row_number=i, name=f"Print {i}", category='Prints', brand='Studio A')
            for i in range(1, 6)
        ]

        async def scenario():
            return await asyncio.gather(*(self.engine.upsert(c) for c in candidates))

        outcomes = asyncio.run(scenario())

        categories = self.store.rows(CATEGORIES)
        brands = self.store.rows(BRANDS)
        assert len(categories) == 1
        assert len(brands) == 1
        assert categories[0]['description'] == 'Products in the Prints category'
        assert brands[0]['description'] == 'Products by Studio A'
        assert sum(o.categories_created for o in outcomes) == 1
        assert {o.product['category_id'] for o in outcomes} == {categories[0]['id']}

    def test_product_fields(self):
        candidate = CandidateProduct(row_number=1, name='Sunset', description='x' * 300)

        fields = self.engine.product_fields(candidate, None, None)

        assert fields['meta_title'] == 'Sunset'
        assert len(fields['meta_description']) == 200
        assert 'category_id' not in fields
        assert 'meta_keywords' not in fields

    def test_link_primary_image(self):
        store = MemoryCatalogStore({PRODUCTS: [{'id': 'p1', 'name': 'Sunset', 'image_url': None}]})

        asyncio.run(UpsertEngine(store).link_primary_image('p1', 'https://a.com/1.jpg'))

        assert store.rows(PRODUCTS)[0]['image_url'] == 'https://a.com/1.jpg'
