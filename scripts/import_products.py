#!/usr/bin/env python3
"""
Product Import Script
Imports a standard or Shopify product CSV into the catalog.
"""

import sys
import argparse
import asyncio
from pathlib import Path
from loguru import logger
from colorama import init, Fore
from tqdm import tqdm

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from catalog_import.config import create_media_client, create_store, load_config, setting
from catalog_import.exceptions import ImportAbortedError
from catalog_import.importer import ImportOrchestrator
from catalog_import.logging_config import setup_logging
from catalog_import.mapper import ALL_DESTINATIONS

# Initialize colorama
init(autoreset=True)


def confirm_mapping(mapper, parsed, overrides, assume_yes, save_path=None) -> bool:
    """Show the prepared field mapping, apply overrides and ask the operator to proceed."""
    for source, destination in overrides:
        if destination in ('', 'none', '-'):
            mapper.remove(source)
        else:
            mapper.change(source, destination)

    print(Fore.CYAN + "=" * 60)
    print(Fore.CYAN + f"FIELD MAPPING ({parsed.format.value} format, {parsed.row_count} records)")
    print(Fore.CYAN + "=" * 60)
    if not mapper.pairs:
        print(Fore.YELLOW + "No columns mapped. Use --map 'Column=field' to map them.")
    for source, destination in mapper.pairs:
        print(f"  {source:30} -> {destination}")
    unmapped = [h for h in parsed.headers if h not in {s for s, _ in mapper.pairs}]
    if unmapped:
        print(Fore.YELLOW + f"Unmapped columns (dropped): {', '.join(unmapped)}")
    print(f"Destination fields: {', '.join(ALL_DESTINATIONS)}")
    print(Fore.CYAN + "=" * 60)

    if save_path:
        mapper.save_mapping_config(save_path)

    if assume_yes:
        return True
    answer = input("Proceed with this mapping? [y/N] ").strip().lower()
    return answer in ('y', 'yes')


def parse_overrides(values):
    overrides = []
    for value in values or []:
        if '=' not in value:
            raise argparse.ArgumentTypeError(f"Mapping override must look like 'Column=field': {value}")
        source, destination = value.split('=', 1)
        overrides.append((source.strip(), destination.strip()))
    return overrides


class ProgressBars:
    """tqdm bars fed from progress events."""

    def __init__(self):
        self.bars = {}

    def __call__(self, event):
        bar = self.bars.get(event.stage)
        if bar is None:
            bar = self.bars[event.stage] = tqdm(total=100, desc=event.stage.capitalize(), unit='%')
        bar.n = int(event.percent)
        bar.set_postfix(created=event.stats.created, updated=event.stats.updated, failed=event.stats.failed)
        bar.refresh()

    def close(self):
        for bar in self.bars.values():
            bar.close()


def print_summary(stats, report_path=None):
    print()
    print(Fore.GREEN + "=" * 60)
    print(Fore.GREEN + "IMPORT COMPLETE")
    print(Fore.GREEN + "=" * 60)
    print(f"Total products: {stats.total_products}")
    print(Fore.GREEN + f"Created: {stats.created}")
    print(Fore.GREEN + f"Updated: {stats.updated}")
    color = Fore.RED if stats.failed else Fore.GREEN
    print(color + f"Failed: {stats.failed}")
    print(f"Dropped before import: {stats.dropped}")
    print(f"Variations created/updated/deleted: {stats.variations_created}/{stats.variations_updated}/{stats.variations_deleted}")
    print(f"Images processed/uploaded/failed: {stats.images_processed}/{stats.images_uploaded}/{stats.images_failed}")
    print(f"Categories created: {stats.categories_created}")
    if stats.errors:
        print()
        print(Fore.RED + f"Errors ({len(stats.errors)}):")
        for error in stats.errors:
            print(Fore.RED + f"  - {error}")
    if report_path:
        print(f"\nError report: {report_path}")
    print(Fore.GREEN + "=" * 60)


async def run_import(args, config):
    store = create_store(config, args.backend)
    media = None if args.skip_images else create_media_client(config)
    bars = ProgressBars()
    overrides = parse_overrides(args.map)

    orchestrator = ImportOrchestrator(
        store=store,
        media=media,
        mapping_config_path=setting(config, 'files', 'mapping_config', args.mapping),
        category_mapping_path=setting(config, 'files', 'category_mapping'),
        batch_size=int(setting(config, 'import', 'batch_size', default=10)),
        default_stock=int(setting(config, 'import', 'default_stock', default=10)),
        prune_variations=bool(setting(config, 'import', 'prune_variations', default=True)),
        progress_callback=bars,
    )
    try:
        stats = await orchestrator.run(
            args.source,
            confirm_mapping=lambda mapper, parsed: confirm_mapping(
                mapper, parsed, overrides, args.yes, args.save_mapping
            ),
        )
    finally:
        bars.close()
        await store.close()
        if media:
            await media.close()

    output_dir = setting(config, 'files', 'output_dir', args.output_dir, default='data/output')
    report_path = orchestrator.generate_error_report(output_dir)
    return stats, report_path


def main():
    """Main import function."""
    parser = argparse.ArgumentParser(
        description='Import products from a standard or Shopify CSV into the catalog'
    )
    parser.add_argument('--source', type=str, help='Path to the products CSV file')
    parser.add_argument('--config', type=str, default='config/config.yaml', help='Path to configuration YAML file')
    parser.add_argument('--backend', choices=['memory', 'rest'], help='Catalog store backend')
    parser.add_argument('--mapping', type=str, help='Saved field mapping JSON for unrecognized CSV formats')
    parser.add_argument('--map', action='append', metavar='COLUMN=FIELD', help="Override one mapping ('Column=none' removes it)")
    parser.add_argument('--save-mapping', type=str, help='Write the confirmed mapping to this JSON file')
    parser.add_argument('--output-dir', type=str, help='Directory for the error report')
    parser.add_argument('--skip-images', action='store_true', help='Link image URLs without uploading them')
    parser.add_argument('-y', '--yes', action='store_true', help='Accept the field mapping without asking')

    args = parser.parse_args()

    # Load configuration (also loads .env)
    config = load_config(args.config)
    setup_logging(
        setting(config, 'logging', 'level', default='INFO'),
        setting(config, 'logging', 'log_file'),
    )

    args.source = setting(config, 'files', 'source_csv', args.source, env_var='SOURCE_CSV_PATH')
    if not args.source:
        print(Fore.RED + "ERROR: Source CSV path not provided!")
        sys.exit(1)
    if not Path(args.source).exists():
        print(Fore.RED + f"ERROR: Source CSV file not found: {args.source}")
        sys.exit(1)

    try:
        stats, report_path = asyncio.run(run_import(args, config))
        print_summary(stats, report_path)
        sys.exit(0 if not stats.failed else 2)
    except ImportAbortedError as e:
        print(Fore.RED + f"Import aborted: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print(Fore.YELLOW + "\nImport interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.exception("Import failed")
        print(Fore.RED + f"ERROR: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
