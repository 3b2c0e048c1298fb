"""
Data Transformer Module
Normalizes mapped values (prices, flags, HTML, codes) into the catalog's types.
"""

import re
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Any, Optional
from loguru import logger

TRUTHY_VALUES = {True, 'true', 'TRUE', '1', 1}

# Currency symbols, letters (USD, EUR...), whitespace and thousands separators
_PRICE_NOISE = re.compile(r'[^\d.\-]')
_SCRIPT_TAGS = re.compile(r'<script[^>]*>.*?</script>', re.DOTALL | re.IGNORECASE)
_HTML_TAGS = re.compile(r'<[^>]+>')
_NON_ALNUM = re.compile(r'[^a-z0-9]')


def parse_price(value: Any) -> Optional[float]:
    """
    Parse a price-like value into a float.

    Currency symbols and thousands separators are stripped before parsing,
    so ``"$1,299.50"`` becomes ``1299.5``.

    Args:
        value: Raw cell value

    Returns:
        Parsed price, or None when the value is blank or not numeric
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    cleaned = _PRICE_NOISE.sub('', str(value).strip())
    if not cleaned or cleaned in ('.', '-'):
        return None

    try:
        price = Decimal(cleaned)
    except InvalidOperation:
        return None

    if price < 0:
        logger.warning(f"Negative price found: {value}, setting to 0")
        return 0.0
    return float(price)


def parse_bool(value: Any) -> bool:
    """Return True only for the accepted truthy spellings; everything else is False."""
    if isinstance(value, str):
        value = value.strip()
    try:
        return value in TRUTHY_VALUES
    except TypeError:
        return False


def parse_int(value: Any) -> Optional[int]:
    """Parse an inventory-style quantity, truncating decimals ("50.5" -> 50)."""
    if value is None or isinstance(value, bool):
        return None
    value_str = str(value).strip().replace(',', '')
    if not value_str:
        return None
    try:
        return int(float(value_str))
    except ValueError:
        return None


def strip_html(value: Any) -> str:
    """
    Remove HTML markup from a description, keeping the text.

    Args:
        value: HTML or plain text

    Returns:
        Plain text with collapsed whitespace
    """
    if value is None:
        return ''
    text = str(value).replace('\\n', '\n')
    text = _SCRIPT_TAGS.sub('', text)
    text = _HTML_TAGS.sub(' ', text)
    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r'\s*\n\s*', '\n', text)
    return text.strip()


def option_code(name: str, max_length: int = 10) -> str:
    """Derive the short code stored for a size or frame material ("Small 12x12" -> "small-12x1")."""
    return re.sub(r'\s+', '-', name.strip().lower())[:max_length]


def sku_fragment(value: str, max_length: Optional[int] = None) -> str:
    """Lower-case a value and keep only ASCII letters and digits, optionally truncated."""
    fragment = _NON_ALNUM.sub('', str(value).lower())
    return fragment[:max_length] if max_length else fragment


class DataTransformer:
    """Transform mapped records into catalog-typed values."""

    PRICE_FIELDS = ('price',)
    BOOLEAN_FIELDS = ('is_featured', 'is_active')
    INTEGER_FIELDS = ('stock_quantity',)
    TEXT_FIELDS = ('name', 'category', 'brand', 'handle', 'image_url')

    def __init__(self, category_mapping_path: Optional[str] = None):
        """
        Initialize data transformer.

        Args:
            category_mapping_path: Optional path to a JSON file renaming source
                categories to catalog categories
        """
        self.category_mappings: Dict[str, str] = {}
        self.default_category = ''
        if category_mapping_path:
            self.load_category_mappings(category_mapping_path)

    def load_category_mappings(self, mapping_path: str) -> None:
        """
        Load category mappings from JSON file.

        The file holds ``{"category_mappings": {"mappings": {"Source Name": "Catalog
        Name"}, "default_category": "..."}}``; the default is used for records
        without a category.

        Args:
            mapping_path: Path to category mapping JSON file
        """
        mapping_file = Path(mapping_path)
        if not mapping_file.exists():
            logger.warning(f"Category mapping file not found: {mapping_path}")
            return
        try:
            with open(mapping_file, 'r', encoding='utf-8') as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Could not load category mappings: {e}. Continuing without category mapping.")
            return
        section = config.get('category_mappings', {})
        self.category_mappings = section.get('mappings', {})
        self.default_category = str(section.get('default_category') or '').strip()
        logger.info(f"Loaded {len(self.category_mappings)} category mappings from {mapping_path}")

    def transform_record(self, mapped: Dict[str, Any]) -> Dict[str, Any]:
        """
        Normalize a mapped record.

        Price fields become floats (None when missing), boolean fields become
        bools, quantities become ints, descriptions lose their HTML and text
        fields are stripped.

        Args:
            mapped: Record keyed by destination field

        Returns:
            New dictionary with normalized values
        """
        transformed = dict(mapped)
        for field, value in mapped.items():
            if field in self.PRICE_FIELDS:
                transformed[field] = parse_price(value)
            elif field in self.BOOLEAN_FIELDS:
                transformed[field] = parse_bool(value)
            elif field in self.INTEGER_FIELDS:
                transformed[field] = parse_int(value)
            elif field == 'description':
                transformed[field] = strip_html(value)
            elif field == 'category':
                transformed[field] = self.transform_category(value)
            elif field in self.TEXT_FIELDS:
                transformed[field] = str(value).strip() if value is not None else ''
        if self.default_category and not transformed.get('category'):
            transformed['category'] = self.default_category
        return transformed

    def transform_category(self, value: Any) -> str:
        """Clean a category name and apply the configured renames."""
        if value is None:
            return ''
        category = str(value).strip()
        # Shopify "Product Category" is a taxonomy path; the catalog keeps the leaf
        if '>' in category:
            category = category.split('>')[-1].strip()
        return self.category_mappings.get(category, category)
