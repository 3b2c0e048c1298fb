"""
Tests for Field Mapper Module
"""

import pytest
import json
import tempfile
import os

from catalog_import.detector import CSVFormat, group_shopify_rows
from catalog_import.mapper import FieldMapper


STANDARD_HEADERS = ['name', 'description', 'price', 'stock_quantity', 'category', 'image_url', 'is_featured']
SHOPIFY_HEADERS = [
    'Handle', 'Title', 'Body (HTML)', 'Vendor', 'Product Category', 'Type', 'Published',
    'Option1 Name', 'Option1 Value', 'Option2 Name', 'Option2 Value', 'Variant SKU',
    'Variant Inventory Qty', 'Variant Price', 'Variant Weight', 'Variant Weight Unit',
    'Image Src', 'Image Position', 'Image Alt Text', 'Status',
]


def shopify_row(**values):
    row = {header: '' for header in SHOPIFY_HEADERS}
    row.update(values)
    return row


class TestFieldMapper:
    """Test cases for FieldMapper."""

    def setup_method(self):
        """Set up test fixtures."""
        self.mapper = FieldMapper()

    def test_suggest_standard(self):
        self.mapper.suggest(CSVFormat.STANDARD, STANDARD_HEADERS)

        assert ('name', 'name') in self.mapper.pairs
        assert ('price', 'price') in self.mapper.pairs
        # Only columns present in the file are suggested
        assert all(source in STANDARD_HEADERS for source, _ in self.mapper.pairs)

    def test_suggest_shopify(self):
        self.mapper.suggest(CSVFormat.SHOPIFY, SHOPIFY_HEADERS)

        pairs = self.mapper.pairs
        assert ('Title', 'name') in pairs
        assert ('Body (HTML)', 'description') in pairs
        assert ('Variant Price', 'price') in pairs
        assert pairs.index(('Product Category', 'category')) < pairs.index(('Type', 'category'))

    def test_suggest_unknown_is_empty(self):
        self.mapper.suggest(CSVFormat.UNKNOWN, ['Foo', 'Bar'])
        assert self.mapper.pairs == []

    def test_edit_mapping(self):
        self.mapper.suggest(CSVFormat.STANDARD, STANDARD_HEADERS)

        self.mapper.remove('image_url')
        self.mapper.change('category', 'brand')
        self.mapper.add('is_featured', 'is_featured')

        pairs = self.mapper.pairs
        assert not any(source == 'image_url' for source, _ in pairs)
        assert ('category', 'brand') in pairs

    def test_unknown_destination_rejected(self):
        with pytest.raises(ValueError):
            self.mapper.add('Colour', 'colour')

    def test_direct_mapping_from_config(self):
        """Test direct field mapping from a saved config."""
        config = {
            "mappings": {
                "direct": {"fields": {"Product Name": "name", "Cost": "price"}},
                "default": {"fields": {"category": "Misc"}},
            }
        }

        with tempfile.NamedTemporaryFile(mode='w', suffix='.json', delete=False) as f:
            json.dump(config, f)
            config_path = f.name

        try:
            mapper = FieldMapper(config_path)
            result = mapper.map_row({"Product Name": "Test Product", "Cost": "19.99", "Unused": "x"})

            assert result == {"name": "Test Product", "price": "19.99", "category": "Misc"}
        finally:
            if os.path.exists(config_path):
                os.unlink(config_path)

    def test_save_mapping_config(self):
        self.mapper.add('Product Name', 'name')
        self.mapper.add('Cost', 'price')

        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'mapping.json')
            self.mapper.save_mapping_config(path)

            with open(path, 'r', encoding='utf-8') as f:
                saved = json.load(f)

        assert saved['mappings']['direct']['fields'] == {'Product Name': 'name', 'Cost': 'price'}

    def test_first_non_empty_value_wins(self):
        self.mapper.suggest(CSVFormat.SHOPIFY, SHOPIFY_HEADERS)

        mapped = self.mapper.map_row(shopify_row(Handle='p', Title='P', Type='Posters'))

        assert mapped['category'] == 'Posters'

    def test_handle_is_fallback_name(self):
        self.mapper.add('Title', 'name')

        mapped = self.mapper.map_row({'Handle': 'blue-print', 'Title': ''})

        assert mapped['name'] == 'blue-print'

    def test_apply_standard(self):
        self.mapper.suggest(CSVFormat.STANDARD, STANDARD_HEADERS)
        rows = [{
            'name': 'Acrylic Painting', 'description': 'desc', 'price': '199.99',
            'stock_quantity': '10', 'category': 'Paintings',
            'image_url': 'http://x/img.jpg', 'is_featured': 'true',
        }]

        result = self.mapper.apply(rows, CSVFormat.STANDARD)

        assert len(result.candidates) == 1
        candidate = result.candidates[0]
        assert candidate.row_number == 1
        assert candidate.name == 'Acrylic Painting'
        assert candidate.price == pytest.approx(199.99)
        assert candidate.stock_quantity == 10
        assert candidate.category == 'Paintings'
        assert candidate.image_urls == ['http://x/img.jpg']
        assert candidate.is_featured is True
        assert candidate.options == []

    def test_apply_drops_nameless_and_defaults_price(self):
        self.mapper.suggest(CSVFormat.STANDARD, STANDARD_HEADERS)
        rows = [
            {'name': '', 'description': 'no name', 'price': '5'},
            {'name': 'Free Print', 'description': '', 'price': ''},
        ]

        result = self.mapper.apply(rows, CSVFormat.STANDARD)

        assert [c.name for c in result.candidates] == ['Free Print']
        assert result.candidates[0].price == 0.0
        assert result.candidates[0].row_number == 2
        assert result.dropped == ['Row 1: Missing product name, record skipped']
        assert any(w.startswith('Row 2:') for w in result.warnings)

    def test_apply_splits_image_urls(self):
        self.mapper.suggest(CSVFormat.STANDARD, STANDARD_HEADERS)
        rows = [{'name': 'A', 'price': '1', 'image_url': 'https://a.com/1.jpg, https://a.com/2.jpg,https://a.com/1.jpg'}]

        result = self.mapper.apply(rows, CSVFormat.STANDARD)

        assert result.candidates[0].image_urls == ['https://a.com/1.jpg', 'https://a.com/2.jpg']

    def test_apply_shopify_group(self):
        rows = group_shopify_rows([
            shopify_row(
                Handle='sunset', Title='Sunset', **{
                    'Body (HTML)': '<p>Warm <b>tones</b></p>', 'Vendor': 'Studio A', 'Type': 'Prints',
                    'Option1 Name': 'Size', 'Option1 Value': 'Small', 'Option2 Name': 'Frame',
                    'Option2 Value': 'Oak', 'Variant SKU': 'SUN-S-OAK', 'Variant Price': '$50.00',
                    'Variant Inventory Qty': '3', 'Image Src': 'https://cdn.example.com/sunset.jpg',
                    'Image Position': '1', 'Status': 'active',
                }
            ),
            shopify_row(
                Handle='sunset', **{
                    'Option1 Value': 'Large', 'Option2 Value': 'Oak',
                    'Variant Price': '80', 'Variant Weight': '2.5', 'Variant Weight Unit': 'kg',
                }
            ),
        ])
        self.mapper.suggest(CSVFormat.SHOPIFY, SHOPIFY_HEADERS)

        result = self.mapper.apply(rows, CSVFormat.SHOPIFY)

        candidate = result.candidates[0]
        assert candidate.is_shopify
        assert candidate.handle == 'sunset'
        assert candidate.description == 'Warm tones'
        assert candidate.brand == 'Studio A'
        assert candidate.category == 'Prints'
        assert candidate.is_active is True
        assert candidate.price == pytest.approx(50.0)
        assert candidate.image_urls == ['https://cdn.example.com/sunset.jpg']
        assert candidate.size_names == ['Small', 'Large']
        assert candidate.frame_names == ['Oak']
        assert len(candidate.options) == 2
        assert candidate.options[0].sku == 'SUN-S-OAK'
        assert candidate.options[0].stock_quantity == 3
        # Variant rows leave option names blank and inherit them from the main row
        assert candidate.options[1].size_name == 'Large'
        assert candidate.options[1].price == pytest.approx(80.0)
        assert candidate.options[1].weight_unit == 'kg'

    def test_draft_shopify_product_is_inactive(self):
        rows = group_shopify_rows([shopify_row(Handle='d', Title='Draft', Status='draft', **{'Variant Price': '1'})])
        self.mapper.suggest(CSVFormat.SHOPIFY, SHOPIFY_HEADERS)

        result = self.mapper.apply(rows, CSVFormat.SHOPIFY)

        assert result.candidates[0].is_active is False

    def test_unsupported_option_is_reported(self):
        rows = group_shopify_rows([
            shopify_row(
                Handle='tee', Title='Tee', **{
                    'Option1 Name': 'Color', 'Option1 Value': 'Red', 'Variant Price': '10',
                    'Image Src': 'https://cdn.example.com/red.jpg',
                }
            ),
            shopify_row(
                Handle='tee', **{
                    'Option1 Value': 'Blue', 'Variant Price': '12',
                    'Image Src': 'https://cdn.example.com/blue.jpg',
                }
            ),
        ])
        self.mapper.suggest(CSVFormat.SHOPIFY, SHOPIFY_HEADERS)

        result = self.mapper.apply(rows, CSVFormat.SHOPIFY)

        candidate = result.candidates[0]
        assert candidate.options == []
        assert candidate.size_names == []
        assert candidate.image_urls == ['https://cdn.example.com/red.jpg', 'https://cdn.example.com/blue.jpg']
        assert "Row 1: option 'Color' is not a size or frame; variant Red skipped" in result.warnings
        assert "Row 2: option 'Color' is not a size or frame; variant Blue skipped" in result.warnings

    def test_default_title_option_is_ignored(self):
        rows = group_shopify_rows([
            shopify_row(
                Handle='print', Title='Print', **{
                    'Option1 Name': 'Title', 'Option1 Value': 'Default Title', 'Variant Price': '20',
                }
            ),
        ])
        self.mapper.suggest(CSVFormat.SHOPIFY, SHOPIFY_HEADERS)

        result = self.mapper.apply(rows, CSVFormat.SHOPIFY)

        assert len(result.candidates[0].options) == 1
        assert not any('not a size or frame' in w for w in result.warnings)
