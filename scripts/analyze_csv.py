#!/usr/bin/env python3
"""
CSV Analysis Utility
Previews an import file: detected format, suggested mapping and what would be dropped.
"""

import sys
import argparse
import json
from pathlib import Path
from loguru import logger
from colorama import init, Fore

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from catalog_import.csv_handler import CSVHandler
from catalog_import.detector import CSVFormat, group_shopify_rows
from catalog_import.logging_config import setup_logging
from catalog_import.mapper import FieldMapper

# Initialize colorama
init(autoreset=True)


def main():
    """Main analysis function."""
    parser = argparse.ArgumentParser(
        description='Preview how a product CSV would be imported'
    )
    parser.add_argument('csv_file', type=str, help='Path to CSV file to analyze')
    parser.add_argument('--mapping', type=str, help='Saved field mapping JSON for unrecognized formats')
    parser.add_argument('--output', type=str, help='Output JSON file for analysis results')

    args = parser.parse_args()
    setup_logging('WARNING')

    csv_path = Path(args.csv_file)
    if not csv_path.exists():
        print(Fore.RED + f"ERROR: CSV file not found: {csv_path}")
        sys.exit(1)

    print(Fore.CYAN + "=" * 60)
    print(Fore.CYAN + "CSV IMPORT PREVIEW")
    print(Fore.CYAN + "=" * 60)
    print(f"File: {csv_path}")
    print()

    try:
        handler = CSVHandler()
        analysis = handler.analyze_csv(str(csv_path))
        parsed = handler.parse(str(csv_path))

        rows = parsed.rows
        if parsed.format == CSVFormat.SHOPIFY:
            rows = group_shopify_rows(rows)

        mapper = FieldMapper()
        mapper.suggest(parsed.format, parsed.headers)
        if parsed.format == CSVFormat.UNKNOWN and args.mapping:
            mapper.load_mapping_config(args.mapping)
        result = mapper.apply(rows, parsed.format)

        print(Fore.YELLOW + "Summary:")
        print(f"  Format: {parsed.format.value}")
        print(f"  Rows: {analysis['row_count']}")
        print(f"  Columns: {analysis['column_count']}")
        print(f"  Products: {len(rows)}")
        print(f"  Importable: {len(result.candidates)}")
        print(f"  Dropped: {len(parsed.skipped) + len(result.dropped)}")
        print()

        print(Fore.YELLOW + "Columns:")
        mapped = dict(mapper.pairs)
        for i, col in enumerate(analysis['columns'], 1):
            missing = analysis['missing_values'][col]
            target = mapped.get(col, '-')
            status = Fore.GREEN + "ok" if missing == 0 else Fore.YELLOW + f"{missing} blank"
            print(f"  {i:2d}. {col:30s} -> {target:15s} {status}")

        dropped = parsed.skipped + result.dropped
        if dropped or result.warnings:
            print()
            print(Fore.YELLOW + "Problems:")
            for message in dropped:
                print(Fore.RED + f"  - {message}")
            for message in result.warnings:
                print(Fore.YELLOW + f"  - {message}")

        print()
        print(Fore.YELLOW + "First products:")
        for candidate in result.candidates[:3]:
            print(f"  Row {candidate.row_number}: {candidate.name} @ {candidate.price:.2f}")
            if candidate.size_names or candidate.frame_names:
                print(f"    sizes: {', '.join(candidate.size_names) or '-'}; frames: {', '.join(candidate.frame_names) or '-'}")
            if candidate.image_urls:
                print(f"    images: {len(candidate.image_urls)}")

        if args.output:
            output_path = Path(args.output)
            with open(output_path, 'w', encoding='utf-8') as f:
                json_data = {
                    'format': parsed.format.value,
                    'row_count': int(analysis['row_count']),
                    'column_count': int(analysis['column_count']),
                    'columns': analysis['columns'],
                    'mapping': mapped,
                    'missing_values': analysis['missing_values'],
                    'importable': len(result.candidates),
                    'dropped': dropped,
                    'warnings': result.warnings,
                    'sample_rows': analysis['sample_rows'],
                }
                json.dump(json_data, f, indent=2, default=str)
            print(Fore.GREEN + f"Analysis saved to: {output_path}")

    except Exception as e:
        logger.exception("Analysis failed")
        print(Fore.RED + f"\nERROR: Analysis failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
