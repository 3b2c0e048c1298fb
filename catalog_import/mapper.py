"""
Field Mapper Module
Maps source CSV columns onto catalog fields and builds candidate products.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Any, Optional, Tuple
from loguru import logger

from .detector import CSVFormat, SHOPIFY_HANDLE_COLUMN
from .models import CandidateProduct, OptionRow
from .transformer import DataTransformer, parse_int, parse_price
from .validator import DataValidator

# Destinations an operator can pick in the mapping dialog
DESTINATION_FIELDS = (
    'name',
    'description',
    'price',
    'category',
    'image_url',
    'is_featured',
)
# Extra destinations the pre-filled mappings use
AUXILIARY_FIELDS = (
    'stock_quantity',
    'brand',
    'status',
    'handle',
)
ALL_DESTINATIONS = DESTINATION_FIELDS + AUXILIARY_FIELDS

# Ordered (source column, destination) pairs. When several columns feed the
# same destination the first non-empty value wins.
STANDARD_MAPPING: List[Tuple[str, str]] = [
    ('name', 'name'),
    ('description', 'description'),
    ('price', 'price'),
    ('stock_quantity', 'stock_quantity'),
    ('category', 'category'),
    ('image_url', 'image_url'),
    ('is_featured', 'is_featured'),
    ('brand', 'brand'),
]

SHOPIFY_MAPPING: List[Tuple[str, str]] = [
    ('Title', 'name'),
    ('Body (HTML)', 'description'),
    ('Variant Price', 'price'),
    ('Product Category', 'category'),
    ('Type', 'category'),
    ('Image Src', 'image_url'),
    ('Published', 'is_featured'),
    ('Vendor', 'brand'),
    ('Status', 'status'),
    ('Variant Inventory Qty', 'stock_quantity'),
    ('Handle', 'handle'),
]

DEFAULT_MAPPINGS: Dict[CSVFormat, List[Tuple[str, str]]] = {
    CSVFormat.STANDARD: STANDARD_MAPPING,
    CSVFormat.SHOPIFY: SHOPIFY_MAPPING,
    CSVFormat.UNKNOWN: [],
}

SIZE_OPTION_NAMES = ('size',)
FRAME_OPTION_NAMES = ('frame', 'frame type')
# Shopify names the single option of a product without variants "Title"
IGNORED_OPTION_NAMES = ('title',)
OPTION_NUMBERS = (1, 2, 3)


@dataclass
class FieldMapping:
    """One source column routed to one catalog field."""

    source: str
    destination: str


@dataclass
class MappingResult:
    """Outcome of applying a mapping to a batch of rows."""

    candidates: List[CandidateProduct] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class FieldMapper:
    """Map source columns to catalog fields using an editable list of pairs."""

    def __init__(self, mapping_config_path: Optional[str] = None, transformer: Optional[DataTransformer] = None):
        """
        Initialize field mapper.

        Args:
            mapping_config_path: Optional path to a saved mapping JSON file
            transformer: Value normalizer (a default one is created if omitted)
        """
        self.mappings: List[FieldMapping] = []
        self.defaults: Dict[str, Any] = {}
        self.transformer = transformer or DataTransformer()
        self.validator = DataValidator()
        if mapping_config_path:
            self.load_mapping_config(mapping_config_path)

    @property
    def pairs(self) -> List[Tuple[str, str]]:
        return [(m.source, m.destination) for m in self.mappings]

    def suggest(self, csv_format: CSVFormat, headers: List[str]) -> List[FieldMapping]:
        """
        Pre-fill the mapping for a detected format.

        Only table entries whose source column exists in the file are kept;
        an unknown format leaves the mapping empty.

        Args:
            csv_format: Detected format
            headers: Header names of the file

        Returns:
            The new mapping list
        """
        header_set = set(headers)
        self.mappings = [
            FieldMapping(source, destination)
            for source, destination in DEFAULT_MAPPINGS[csv_format]
            if source in header_set
        ]
        logger.info(f"Suggested {len(self.mappings)} field mappings for {csv_format.value} format")
        return self.mappings

    def add(self, source: str, destination: str) -> None:
        """Route another source column to a destination field."""
        self._check_destination(destination)
        self.mappings.append(FieldMapping(source, destination))

    def remove(self, source: str) -> None:
        """Drop every mapping reading from ``source``."""
        self.mappings = [m for m in self.mappings if m.source != source]

    def change(self, source: str, destination: str) -> None:
        """Point an existing source column at a different destination (adds it if unmapped)."""
        self._check_destination(destination)
        for mapping in self.mappings:
            if mapping.source == source:
                mapping.destination = destination
                return
        self.mappings.append(FieldMapping(source, destination))

    def clear(self) -> None:
        self.mappings = []

    def _check_destination(self, destination: str) -> None:
        if destination not in ALL_DESTINATIONS:
            raise ValueError(
                f"Unknown destination field '{destination}'. "
                f"Choose one of: {', '.join(ALL_DESTINATIONS)}"
            )

    def load_mapping_config(self, config_path: str) -> None:
        """
        Load a saved mapping from a JSON file.

        The file uses ``{"mappings": {"direct": {"fields": {source: destination}},
        "default": {"fields": {destination: value}}}}``.

        Args:
            config_path: Path to mapping configuration JSON file
        """
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = json.load(f)
        except FileNotFoundError:
            logger.warning(f"Mapping config not found: {config_path}, using empty config")
            return
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in mapping config: {e}")
            raise

        mappings = config.get('mappings', {})
        self.mappings = []
        for source, destination in mappings.get('direct', {}).get('fields', {}).items():
            self.add(source, destination)
        self.defaults = dict(mappings.get('default', {}).get('fields', {}))
        logger.info(f"Loaded mapping configuration from {config_path}")

    def save_mapping_config(self, config_path: str) -> None:
        """
        Save the current mapping to a JSON file.

        Args:
            config_path: Output path
        """
        config = {
            'mappings': {
                'direct': {'fields': {m.source: m.destination for m in self.mappings}},
                'default': {'fields': self.defaults},
            }
        }
        path = Path(config_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(config, f, indent=2)
        logger.info(f"Saved mapping configuration to {config_path}")

    def map_row(self, source_row: Dict[str, Any]) -> Dict[str, Any]:
        """
        Copy mapped source values under their destination names.

        Unmapped columns are dropped. For a destination fed by several
        columns the first non-empty value wins, and defaults fill whatever
        is still missing.

        Args:
            source_row: Dictionary representing a source row

        Returns:
            Dictionary keyed by destination field
        """
        mapped: Dict[str, Any] = {}
        for mapping in self.mappings:
            value = source_row.get(mapping.source)
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            if mapping.destination not in mapped:
                mapped[mapping.destination] = value

        for destination, default_value in self.defaults.items():
            mapped.setdefault(destination, default_value)

        if not str(mapped.get('name') or '').strip():
            handle = str(source_row.get(SHOPIFY_HANDLE_COLUMN) or '').strip()
            if handle:
                mapped['name'] = source_row[SHOPIFY_HANDLE_COLUMN]
        return mapped

    def apply(self, rows: List[Dict[str, Any]], csv_format: CSVFormat) -> MappingResult:
        """
        Apply the mapping to every row and build candidate products.

        Records left without a name are dropped with a reason; records
        without a price are kept at price 0 with a warning.

        Args:
            rows: Raw rows (Shopify rows already grouped by handle)
            csv_format: Detected format of the file

        Returns:
            MappingResult with candidates, drop reasons and warnings
        """
        result = MappingResult()
        for position, row in enumerate(rows, start=1):
            row_number = int(row.get('_row_number') or position)

            is_valid, errors = self.validator.validate_source_row(row, row_number)
            if not is_valid:
                result.dropped.extend(errors)
                continue

            record = self.transformer.transform_record(self.map_row(row))
            record['image_urls'] = _split_urls(record.get('image_url'))
            if csv_format == CSVFormat.SHOPIFY:
                options, option_warnings = self._shopify_options(row)
                result.warnings.extend(option_warnings)
                for group_row in _group_rows(row):
                    url = str(group_row.get('Image Src') or '').strip()
                    if url and url not in record['image_urls']:
                        record['image_urls'].append(url)
            else:
                options = []

            is_valid, errors, warnings = self.validator.validate_record(record, row_number)
            result.warnings.extend(warnings)
            if not is_valid:
                result.dropped.extend(errors)
                continue

            result.candidates.append(self._build_candidate(record, row_number, options, csv_format))

        logger.info(
            f"Mapped {len(result.candidates)} candidate products "
            f"({len(result.dropped)} dropped, {len(result.warnings)} warnings)"
        )
        return result

    def _build_candidate(
        self,
        record: Dict[str, Any],
        row_number: int,
        options: List[OptionRow],
        csv_format: CSVFormat,
    ) -> CandidateProduct:
        status = record.get('status')
        is_active = True if status is None else str(status).strip().lower() == 'active'
        return CandidateProduct(
            row_number=row_number,
            name=str(record['name']).strip(),
            price=record['price'],
            description=record.get('description') or '',
            category=record.get('category') or None,
            brand=record.get('brand') or None,
            handle=record.get('handle') or None,
            image_urls=record['image_urls'],
            is_featured=bool(record.get('is_featured', False)),
            is_active=is_active,
            stock_quantity=record.get('stock_quantity'),
            options=options,
            source_format=csv_format.value,
        )

    def _shopify_options(self, main_row: Dict[str, Any]) -> Tuple[List[OptionRow], List[str]]:
        """
        Turn the main row and its variant rows into option rows, in file order.

        Variant rows usually leave ``OptionN Name`` blank; they inherit the
        option names of the main row. A variant valued on an option that is
        neither a size nor a frame (``Color``...) cannot be stored and is
        skipped with a warning.

        Returns:
            Tuple of (option rows, warnings)
        """
        option_names = {
            number: str(main_row.get(f'Option{number} Name') or '').strip()
            for number in OPTION_NUMBERS
        }
        options = []
        warnings = []
        for row in _group_rows(main_row):
            option = OptionRow(
                price=parse_price(row.get('Variant Price')),
                stock_quantity=parse_int(row.get('Variant Inventory Qty')),
                sku=str(row.get('Variant SKU') or '').strip() or None,
                weight=parse_price(row.get('Variant Weight')),
                weight_unit=str(row.get('Variant Weight Unit') or '').strip() or None,
                image_url=str(row.get('Image Src') or '').strip() or None,
                image_position=parse_int(row.get('Image Position')),
                image_alt=str(row.get('Image Alt Text') or '').strip(),
            )
            unsupported = []
            for number in OPTION_NUMBERS:
                name = str(row.get(f'Option{number} Name') or '').strip() or option_names[number]
                value = str(row.get(f'Option{number} Value') or '').strip()
                if not value:
                    continue
                key = name.lower()
                if key in SIZE_OPTION_NAMES:
                    option.size_name = value
                elif key in FRAME_OPTION_NAMES:
                    option.frame_name = value
                elif key not in IGNORED_OPTION_NAMES:
                    unsupported.append((name, value))

            if unsupported:
                row_number = row.get('_row_number', '?')
                for name, value in unsupported:
                    message = f"Row {row_number}: option '{name}' is not a size or frame; variant {value} skipped"
                    logger.warning(message)
                    warnings.append(message)
                continue
            options.append(option)
        return options, warnings


def _group_rows(main_row: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Main row and variant rows of a grouped Shopify record, in file order."""
    group = [main_row] + list(main_row.get('variations') or [])
    group.sort(key=lambda r: int(r.get('_row_number') or 0))
    return group


def _split_urls(value: Any) -> List[str]:
    """Split a comma-separated image cell into unique URLs, keeping order."""
    if not value:
        return []
    urls = []
    for url in str(value).split(','):
        url = url.strip()
        if url and url not in urls:
            urls.append(url)
    return urls
