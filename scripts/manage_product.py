#!/usr/bin/env python3
"""
Product Editor Script
Changes one product's size/frame selection or deletes one of its images.
"""

import sys
import argparse
import asyncio
from pathlib import Path
from loguru import logger
from colorama import init, Fore

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from catalog_import.config import create_media_client, create_store, load_config, setting
from catalog_import.exceptions import CatalogImportError
from catalog_import.images import ImagePipeline
from catalog_import.logging_config import setup_logging
from catalog_import.variations import VariationGenerator

# Initialize colorama
init(autoreset=True)


def ask_delete(rows, assume_yes):
    print(Fore.YELLOW + f"{len(rows)} variations are no longer selected:")
    for row in rows:
        print(f"  - {row.get('sku')} (size {row.get('size_id')}, frame {row.get('frame_type_id')})")
    if assume_yes:
        return True
    answer = input("Delete them? [y/N] ").strip().lower()
    return answer in ('y', 'yes')


async def sync_variations(args, config):
    store = create_store(config, args.backend)
    try:
        generator = VariationGenerator(
            store,
            default_stock=int(setting(config, 'import', 'default_stock', default=10)),
        )
        outcome = await generator.sync_product_variations(
            args.product_id,
            args.sizes or [],
            args.frames or [],
            confirm=lambda rows: ask_delete(rows, args.yes),
        )
    finally:
        await store.close()

    for warning in outcome.warnings:
        print(Fore.YELLOW + warning)
    print(Fore.GREEN + f"Variations created: {outcome.created}, deleted: {outcome.deleted}")
    for sku in outcome.skus:
        print(f"  + {sku}")


async def delete_image(args, config):
    store = create_store(config, args.backend)
    media = create_media_client(config)
    try:
        await ImagePipeline(store, media).delete_image(args.image_id)
    finally:
        await store.close()
        if media:
            await media.close()
    print(Fore.GREEN + f"Image {args.image_id} deleted")


def main():
    """Main editor function."""
    parser = argparse.ArgumentParser(description='Edit a single catalog product')
    parser.add_argument('--config', type=str, default='config/config.yaml', help='Path to configuration YAML file')
    parser.add_argument('--backend', choices=['memory', 'rest'], default='rest', help='Catalog store backend')
    subparsers = parser.add_subparsers(dest='command', required=True)

    variations = subparsers.add_parser('variations', help='Apply a size x frame selection')
    variations.add_argument('product_id', type=str)
    variations.add_argument('--sizes', nargs='*', help='Selected size ids')
    variations.add_argument('--frames', nargs='*', help='Selected frame type ids')
    variations.add_argument('-y', '--yes', action='store_true', help='Delete unselected variations without asking')

    image = subparsers.add_parser('delete-image', help='Delete a product image')
    image.add_argument('image_id', type=str)

    args = parser.parse_args()

    config = load_config(args.config)
    setup_logging(setting(config, 'logging', 'level', default='INFO'))

    handler = sync_variations if args.command == 'variations' else delete_image
    try:
        asyncio.run(handler(args, config))
    except CatalogImportError as e:
        print(Fore.RED + f"ERROR: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print(Fore.YELLOW + "\nInterrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.exception("Edit failed")
        print(Fore.RED + f"ERROR: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
