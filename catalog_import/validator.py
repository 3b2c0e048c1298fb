"""
Data Validator Module
Validates mapped records before they reach the data store.
"""

import re
from typing import Dict, Any, List, Tuple
from loguru import logger


URL_PATTERN = re.compile(
    r'^https?://'
    r'(?:[A-Z0-9](?:[A-Z0-9-]{0,61}[A-Z0-9])?\.)*'
    r'[A-Z0-9](?:[A-Z0-9-]{0,61}[A-Z0-9])?\.?'
    r'(?::\d+)?'
    r'(?:/?|[/?]\S+)$', re.IGNORECASE)


class DataValidator:
    """Validate data before and after transformation."""

    def validate_source_row(self, row: Dict[str, Any], row_number: int) -> Tuple[bool, List[str]]:
        """
        Validate a raw row before mapping.

        Args:
            row: Source row dictionary
            row_number: Row number for error reporting

        Returns:
            Tuple of (is_valid, list_of_errors)
        """
        values = [v for k, v in row.items() if k != 'variations' and not k.startswith('_')]
        if not any(v is not None and str(v).strip() for v in values):
            return False, [f"Row {row_number}: Row is completely empty"]
        return True, []

    def validate_record(
        self,
        record: Dict[str, Any],
        row_number: int,
    ) -> Tuple[bool, List[str], List[str]]:
        """
        Validate a transformed record.

        A record without a name cannot be imported. A missing price is
        defaulted to 0 in place and reported as a warning, and image URLs
        that do not look like URLs are removed with a warning.

        Args:
            record: Transformed record keyed by destination field
            row_number: Row number for error reporting

        Returns:
            Tuple of (is_valid, list_of_errors, list_of_warnings)
        """
        errors = []
        warnings = []

        if not str(record.get('name') or '').strip():
            errors.append(f"Row {row_number}: Missing product name, record skipped")

        if record.get('price') is None:
            warnings.append(f"Row {row_number}: Missing or invalid price, defaulting to 0")
            record['price'] = 0.0

        urls = record.get('image_urls') or []
        invalid = self.invalid_urls(urls)
        if invalid:
            warnings.append(f"Row {row_number}: Invalid image URLs ignored: {', '.join(invalid)}")
            record['image_urls'] = [url for url in urls if url not in invalid]

        for message in warnings:
            logger.warning(message)

        return len(errors) == 0, errors, warnings

    def invalid_urls(self, urls: List[str]) -> List[str]:
        """
        Return the URLs that are not well-formed http(s) URLs.

        Args:
            urls: Candidate URLs

        Returns:
            List of invalid URLs
        """
        return [url for url in urls if not URL_PATTERN.match(url)]

    def check_duplicates(self, values: List[str]) -> List[str]:
        """
        Return values that appear more than once, in first-seen order.

        Args:
            values: Values to check (SKUs, names...)

        Returns:
            Duplicated values
        """
        seen = set()
        duplicates = []
        for value in values:
            if value in seen and value not in duplicates:
                duplicates.append(value)
            seen.add(value)
        return duplicates
