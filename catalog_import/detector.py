"""
Format Detector Module
Identifies the shape of an uploaded CSV and regroups Shopify variant rows.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List
from loguru import logger


class CSVFormat(str, Enum):
    """Closed set of CSV shapes the importer understands."""

    STANDARD = 'standard'
    SHOPIFY = 'shopify'
    UNKNOWN = 'unknown'


SHOPIFY_HANDLE_COLUMN = 'Handle'
SHOPIFY_TITLE_COLUMN = 'Title'
SHOPIFY_PRICE_PREFIX = 'Variant Price'
STANDARD_SIGNATURE = frozenset({'name', 'price', 'description'})


@dataclass
class ParsedCSV:
    """
    Headers, row records and detected format of one uploaded file.

    Every row carries its 1-based data row number under ``_row_number``;
    ``skipped`` holds the reasons for lines that could not be read.
    """

    headers: List[str]
    rows: List[Dict[str, Any]]
    format: CSVFormat = CSVFormat.UNKNOWN
    warnings: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


def detect_format(headers: Iterable[str]) -> CSVFormat:
    """
    Detect the CSV format from its header row.

    A ``Handle`` column plus ``Title`` or a variant price column means a
    Shopify export; ``name``, ``price`` and ``description`` together mean the
    standard template. Anything else must be mapped by hand.

    Args:
        headers: Header names in file order

    Returns:
        The detected format tag
    """
    header_set = {str(h).strip() for h in headers}

    if SHOPIFY_HANDLE_COLUMN in header_set and (
        SHOPIFY_TITLE_COLUMN in header_set
        or any(h.startswith(SHOPIFY_PRICE_PREFIX) for h in header_set)
    ):
        return CSVFormat.SHOPIFY

    if STANDARD_SIGNATURE.issubset(header_set):
        return CSVFormat.STANDARD

    return CSVFormat.UNKNOWN


def group_shopify_rows(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Collapse a Shopify export into one record per handle.

    Groups keep the order in which their handle was first seen. Within a
    group the first row with a non-empty ``Title`` becomes the main row (the
    group's first row when none has a title) and every other row is attached
    to it, in file order, under ``variations``. Each record also carries the
    1-based data row number of its main row under ``_row_number``: the one
    the parser set, else the row's position in ``rows``.

    Args:
        rows: Raw Shopify rows

    Returns:
        One main-row record per handle
    """
    groups: Dict[str, List[Dict[str, Any]]] = {}
    for index, row in enumerate(rows, start=1):
        row_number = int(row.get('_row_number') or index)
        handle = str(row.get(SHOPIFY_HANDLE_COLUMN) or '').strip()
        if not handle:
            logger.warning(f"Row {row_number}: skipping Shopify row without a Handle")
            continue
        groups.setdefault(handle, []).append(dict(row, _row_number=row_number))

    grouped = []
    for handle, group in groups.items():
        main_index = next(
            (i for i, row in enumerate(group) if str(row.get(SHOPIFY_TITLE_COLUMN) or '').strip()),
            0,
        )
        main_row = dict(group[main_index])
        main_row['variations'] = [row for i, row in enumerate(group) if i != main_index]
        grouped.append(main_row)

    logger.info(f"Grouped {len(rows)} Shopify rows into {len(grouped)} products")
    return grouped
