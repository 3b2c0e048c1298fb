"""
Import Orchestrator Module
Coordinates the whole import: parse, map, then upsert records batch by batch.
"""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional
from loguru import logger

from .csv_handler import CSVHandler
from .detector import CSVFormat, ParsedCSV, group_shopify_rows
from .exceptions import ImportAbortedError
from .images import ImagePipeline, image_sources
from .mapper import FieldMapper, MappingResult
from .media import MediaHostClient
from .models import CandidateProduct
from .stats import CREATED, FAILED, UPDATED, ImportStats, ProgressCallback, ProgressReporter, RecordResult
from .transformer import DataTransformer
from .upsert import UpsertEngine
from .validator import DataValidator
from .variations import SkuGenerator, VariationGenerator

DEFAULT_BATCH_SIZE = 10

MappingConfirm = Callable[[FieldMapper, ParsedCSV], bool]


class ImportOrchestrator:
    """Orchestrate a complete CSV product import."""

    def __init__(
        self,
        store,
        media: Optional[MediaHostClient] = None,
        mapping_config_path: Optional[str] = None,
        category_mapping_path: Optional[str] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        default_stock: int = 10,
        prune_variations: bool = True,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """
        Initialize import orchestrator.

        Args:
            store: Catalog store the products are written to
            media: Media host client (images are linked as they are without one)
            mapping_config_path: Saved field mapping for files of unrecognized format
            category_mapping_path: JSON file renaming source categories
            batch_size: Records processed concurrently per batch
            default_stock: Stock for variations without an inventory column
            prune_variations: Delete variations the CSV no longer describes
            progress_callback: Receives a ProgressEvent after each batch and image
        """
        self.store = store
        self.batch_size = batch_size
        self.mapping_config_path = mapping_config_path

        # Initialize components
        self.csv_handler = CSVHandler()
        self.transformer = DataTransformer(category_mapping_path=category_mapping_path)
        self.mapper = FieldMapper(transformer=self.transformer)
        self.validator = DataValidator()
        self.upsert = UpsertEngine(store)
        self.variations = VariationGenerator(
            store,
            SkuGenerator(store),
            default_stock=default_stock,
            prune=prune_variations,
        )
        self.images = ImagePipeline(store, media, on_image=self._image_processed)
        self.progress = ProgressReporter(progress_callback)

        self.stats = ImportStats()
        self._images_total = 0
        self._images_done = 0

    def load(self, csv_path: str) -> ParsedCSV:
        """
        Parse a CSV file and group Shopify variant rows.

        Args:
            csv_path: Path to the uploaded CSV

        Returns:
            ParsedCSV whose rows are ready for mapping
        """
        parsed = self.csv_handler.parse(csv_path)
        if parsed.format == CSVFormat.SHOPIFY:
            parsed.rows = group_shopify_rows(parsed.rows)
            if not parsed.rows:
                raise ImportAbortedError('No Shopify rows with a Handle found')
        elif parsed.format == CSVFormat.UNKNOWN:
            parsed.warnings.append('Unrecognized CSV format; map the columns manually')
            logger.warning("Unrecognized CSV format, field mapping must be set up by hand")
        return parsed

    def prepare_mapping(self, parsed: ParsedCSV) -> FieldMapper:
        """Pre-fill the field mapping; unrecognized files start from the saved mapping if there is one."""
        self.mapper.suggest(parsed.format, parsed.headers)
        if parsed.format == CSVFormat.UNKNOWN and self.mapping_config_path:
            self.mapper.load_mapping_config(self.mapping_config_path)
        return self.mapper

    def map_records(self, parsed: ParsedCSV) -> MappingResult:
        """
        Apply the field mapping to the parsed rows.

        Raises:
            ImportAbortedError: if no record survives mapping
        """
        result = self.mapper.apply(parsed.rows, parsed.format)
        if not result.candidates:
            raise ImportAbortedError(
                f"No valid records to import ({len(result.dropped)} dropped)"
            )
        return result

    async def run(self, csv_path: str, confirm_mapping: Optional[MappingConfirm] = None) -> ImportStats:
        """
        Run a complete import.

        Args:
            csv_path: Path to the uploaded CSV
            confirm_mapping: Shown the prepared mapping; returning False cancels the run

        Returns:
            Final import statistics

        Raises:
            ImportAbortedError: for an empty or unreadable file, no valid
                records, or a declined mapping
        """
        logger.info("Starting import process...")
        parsed = self.load(csv_path)
        self.prepare_mapping(parsed)

        if confirm_mapping is not None and not confirm_mapping(self.mapper, parsed):
            raise ImportAbortedError('Import cancelled at field mapping confirmation')

        mapping = self.map_records(parsed)
        stats = ImportStats(total_products=len(mapping.candidates)).with_dropped(
            parsed.skipped + mapping.dropped, mapping.warnings
        )
        return await self.import_candidates(mapping.candidates, stats)

    async def import_candidates(
        self,
        candidates: List[CandidateProduct],
        stats: Optional[ImportStats] = None,
    ) -> ImportStats:
        """
        Upsert candidates in sequential batches, records within a batch concurrently.

        A failing record is reported in the stats and never stops the
        others. Counters are folded once per batch.

        Args:
            candidates: Mapped records
            stats: Starting statistics (fresh ones when omitted)

        Returns:
            Statistics after the last batch
        """
        self.stats = stats or ImportStats(total_products=len(candidates))
        issued_skus: List[str] = []
        batches = [
            candidates[i:i + self.batch_size]
            for i in range(0, len(candidates), self.batch_size)
        ]
        self._images_total = sum(len(image_sources(c)) for c in candidates)
        self._images_done = 0

        logger.info(f"Importing {len(candidates)} products in {len(batches)} batches")
        for index, batch in enumerate(batches, start=1):
            results = await asyncio.gather(*(self._process_record(c) for c in batch))
            self.stats = self.stats.fold(results)
            issued_skus.extend(sku for result in results for sku in result.skus)
            self.progress.emit('products', index, len(batches), self.stats)

        duplicates = self.validator.check_duplicates(issued_skus)
        if duplicates:
            logger.error(f"Duplicate SKUs issued during import: {duplicates}")
        self._log_summary()
        return self.stats

    async def _process_record(self, candidate: CandidateProduct) -> RecordResult:
        """Import one record; every failure is captured into the result."""
        row = candidate.row_number
        try:
            outcome = await self.upsert.upsert(candidate)
        except Exception as e:
            message = f"Row {row}: Failed to import '{candidate.name}': {e}"
            logger.error(message)
            return RecordResult(row_number=row, name=candidate.name, action=FAILED, errors=(message,))

        product = outcome.product
        errors = []
        warnings = []
        counts = {
            'categories_created': outcome.categories_created,
            'brands_created': outcome.brands_created,
        }

        # The product stays committed even when its variations or images fail
        skus = ()
        try:
            variations = await self.variations.reconcile(product, candidate)
            counts.update(
                variations_created=variations.created,
                variations_updated=variations.updated,
                variations_deleted=variations.deleted,
            )
            skus = tuple(variations.skus)
            warnings.extend(f"Row {row}: {w}" for w in variations.warnings)
            errors.extend(f"Row {row}: {message}" for message in variations.errors)
        except Exception as e:
            message = f"Row {row}: Variations failed for '{candidate.name}': {e}"
            logger.error(message)
            errors.append(message)

        try:
            images = await self.images.attach_images(product['id'], image_sources(candidate), row)
            counts.update(
                images_processed=images.processed,
                images_uploaded=images.uploaded,
                images_failed=images.failed,
            )
            errors.extend(images.errors)
            if images.primary_url and (outcome.created or not product.get('image_url')):
                await self.upsert.link_primary_image(product['id'], images.primary_url)
        except Exception as e:
            message = f"Row {row}: Images failed for '{candidate.name}': {e}"
            logger.error(message)
            errors.append(message)

        return RecordResult(
            row_number=row,
            name=candidate.name,
            action=CREATED if outcome.created else UPDATED,
            skus=skus,
            errors=tuple(errors),
            warnings=tuple(warnings),
            **counts,
        )

    def _image_processed(self) -> None:
        self._images_done += 1
        self.progress.emit('images', self._images_done, self._images_total, self.stats)

    def generate_error_report(self, output_dir: str) -> Optional[Path]:
        """
        Write the run's errors and warnings to a CSV report.

        Args:
            output_dir: Directory for the report

        Returns:
            Path of the report, or None when there was nothing to report
        """
        rows = [{'type': 'error', 'message': m} for m in self.stats.errors]
        rows += [{'type': 'warning', 'message': m} for m in self.stats.warnings]
        if not rows:
            return None

        report_path = Path(output_dir) / f"import_errors_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv"
        self.csv_handler.write_csv(rows, str(report_path), columns=['type', 'message'])
        logger.info(f"Error report saved to: {report_path}")
        return report_path

    def _log_summary(self) -> None:
        """Log import summary."""
        stats = self.stats
        logger.info("=" * 60)
        logger.info("IMPORT SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Total products: {stats.total_products}")
        logger.info(f"Created: {stats.created}")
        logger.info(f"Updated: {stats.updated}")
        logger.info(f"Failed: {stats.failed}")
        logger.info(f"Dropped before import: {stats.dropped}")
        logger.info(
            f"Variations created/updated/deleted: "
            f"{stats.variations_created}/{stats.variations_updated}/{stats.variations_deleted}"
        )
        logger.info(
            f"Images processed/uploaded/failed: "
            f"{stats.images_processed}/{stats.images_uploaded}/{stats.images_failed}"
        )
        logger.info(f"Categories created: {stats.categories_created}")
        logger.info(f"Errors: {len(stats.errors)}")
        logger.info("=" * 60)
