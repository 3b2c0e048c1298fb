"""
Data Model Module
Catalog entities written by the import and the normalized records that feed them.
"""

import uuid
from dataclasses import dataclass, field, fields, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

PRODUCTS = 'products'
VARIATIONS = 'product_variations'
IMAGES = 'product_images'
SIZES = 'product_sizes'
FRAME_TYPES = 'frame_types'
CATEGORIES = 'product_categories'
BRANDS = 'brands'

DEFAULT_SIZE_NAME = 'Default Size'
DEFAULT_FRAME_NAME = 'Default Frame'


def new_id() -> str:
    """Return a fresh identifier for a new row."""
    return str(uuid.uuid4())


def utc_now() -> str:
    """Return the current time as an ISO-8601 string, the way the store keeps timestamps."""
    return datetime.now(timezone.utc).isoformat()


class _Row:
    """Mixin giving dataclass entities a dict round trip against store rows."""

    @classmethod
    def from_row(cls, row: Dict[str, Any]):
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in row.items() if k in known})

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Product(_Row):
    name: str
    id: str = field(default_factory=new_id)
    description: str = ''
    base_price: float = 0.0
    category_id: Optional[str] = None
    brand_id: Optional[str] = None
    image_url: Optional[str] = None
    is_featured: bool = False
    is_active: bool = True
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    # Shopify handle lives here so re-imports can find the product again
    meta_keywords: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)


@dataclass
class ProductVariation(_Row):
    product_id: str
    size_id: str
    frame_type_id: str
    sku: str
    price: float
    id: str = field(default_factory=new_id)
    stock_quantity: int = 10
    weight: float = 0.0
    weight_unit: str = 'lb'
    is_active: bool = True


@dataclass
class ProductImage(_Row):
    product_id: str
    image_url: str
    id: str = field(default_factory=new_id)
    is_primary: bool = False
    sort_order: int = 1
    alt_text: str = ''


@dataclass
class Size(_Row):
    name: str
    id: str = field(default_factory=new_id)
    code: str = ''
    dimensions: str = ''
    price_adjustment: float = 0.0


@dataclass
class FrameType(_Row):
    name: str
    id: str = field(default_factory=new_id)
    material: str = ''
    color: str = 'default'
    price_adjustment: float = 0.0


@dataclass
class Category(_Row):
    name: str
    id: str = field(default_factory=new_id)
    description: str = ''


@dataclass
class Brand(_Row):
    name: str
    id: str = field(default_factory=new_id)
    description: str = ''
    is_active: bool = True


@dataclass
class OptionRow:
    """One purchasable row of a source product (a Shopify variant row, or the product itself)."""

    size_name: Optional[str] = None
    frame_name: Optional[str] = None
    price: Optional[float] = None
    stock_quantity: Optional[int] = None
    sku: Optional[str] = None
    weight: Optional[float] = None
    weight_unit: Optional[str] = None
    image_url: Optional[str] = None
    image_position: Optional[int] = None
    image_alt: str = ''


@dataclass
class CandidateProduct:
    """A normalized record ready for the upsert engine."""

    row_number: int
    name: str
    price: float = 0.0
    description: str = ''
    category: Optional[str] = None
    brand: Optional[str] = None
    handle: Optional[str] = None
    image_urls: List[str] = field(default_factory=list)
    is_featured: bool = False
    is_active: bool = True
    stock_quantity: Optional[int] = None
    options: List[OptionRow] = field(default_factory=list)
    source_format: str = 'standard'

    @property
    def is_shopify(self) -> bool:
        return self.source_format == 'shopify'

    @property
    def size_names(self) -> List[str]:
        return _unique(o.size_name for o in self.options if o.size_name)

    @property
    def frame_names(self) -> List[str]:
        return _unique(o.frame_name for o in self.options if o.frame_name)


def _unique(values) -> List[str]:
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen
