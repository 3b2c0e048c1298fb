"""
CSV Handler Module
Handles reading and writing CSV files with proper encoding and error handling.
"""

import pandas as pd
import chardet
from pathlib import Path
from typing import Optional, Dict, List, Any
from loguru import logger

from .detector import ParsedCSV, detect_format
from .exceptions import ImportAbortedError

# Placeholder first cell for lines with more fields than the header
MALFORMED_MARKER = '\x00malformed-line'


class CSVHandler:
    """Handle CSV file operations with encoding detection and error handling."""

    def __init__(self, encoding: Optional[str] = None):
        """
        Initialize CSV handler.

        Args:
            encoding: Optional encoding to use. If None, will auto-detect.
        """
        self.encoding = encoding
        self.detected_encoding = None
        self.skipped_rows: List[str] = []
        self._bad_line_widths: List[int] = []

    def detect_encoding(self, file_path: str) -> str:
        """
        Detect the encoding of a CSV file.

        Args:
            file_path: Path to the CSV file

        Returns:
            Detected encoding string
        """
        try:
            with open(file_path, 'rb') as f:
                raw_data = f.read(10000)  # Read first 10KB for detection
        except OSError as e:
            logger.warning(f"Could not detect encoding, using UTF-8: {e}")
            return 'utf-8'

        result = chardet.detect(raw_data)
        encoding = result['encoding']
        confidence = result['confidence'] or 0
        logger.info(f"Detected encoding: {encoding} (confidence: {confidence:.2%})")
        return encoding or 'utf-8'

    def read_csv(self, file_path: str, encoding: Optional[str] = None) -> pd.DataFrame:
        """
        Read CSV file with every cell kept as a string.

        Blank cells come back as ``""`` and rows with no value at all are
        dropped. Lines with more fields than the header are dropped too and
        listed in ``skipped_rows``. The index keeps each row's 0-based
        position among the data rows.

        Args:
            file_path: Path to the CSV file
            encoding: Optional encoding (will detect if not provided)

        Returns:
            DataFrame containing the CSV data

        Raises:
            FileNotFoundError: if the file does not exist
            ImportAbortedError: if the file is empty or has no header row
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise FileNotFoundError(f"CSV file not found: {file_path}")

        if encoding is None:
            encoding = self.encoding or self.detect_encoding(str(file_path))
            self.detected_encoding = encoding

        logger.info(f"Reading CSV file: {file_path}")

        try:
            df = self._read(file_path, encoding)
        except UnicodeDecodeError:
            logger.warning("Encoding error, trying UTF-8-BOM")
            df = self._read(file_path, 'utf-8-sig')
        except pd.errors.EmptyDataError as e:
            raise ImportAbortedError(f"CSV file is empty: {file_path}") from e
        except pd.errors.ParserError as e:
            logger.error(f"Error reading CSV file: {e}")
            raise ImportAbortedError(f"CSV file could not be parsed: {e}") from e

        if len(df) and not isinstance(df.index, pd.RangeIndex):
            # pandas reads an extra field on the first data line as an index column
            raise ImportAbortedError(
                f"Row 1 of {file_path} has more fields than the header; fix it and upload again"
            )

        df.columns = [str(col).lstrip('\ufeff').strip() for col in df.columns]
        # Index keeps each row's position in the file so row numbers survive filtering
        malformed = df.iloc[:, 0] == MALFORMED_MARKER
        self.skipped_rows = [
            f"Row {position + 1}: Malformed line skipped ({fields} fields, expected {len(df.columns)})"
            for position, fields in zip(df.index[malformed], self._bad_line_widths)
        ]
        for message in self.skipped_rows:
            logger.warning(message)
        df = df[~malformed]
        if len(df):
            non_blank = df.apply(lambda row: any(str(v).strip() for v in row), axis=1)
            df = df[non_blank]

        logger.info(f"Successfully read {len(df)} rows from {file_path}")
        return df

    def _read(self, file_path: Path, encoding: str) -> pd.DataFrame:
        width = len(pd.read_csv(file_path, encoding=encoding, nrows=0).columns)
        self._bad_line_widths = []

        def keep_place(bad_line: List[str]) -> List[str]:
            # Lines with extra fields are kept as marker rows and reported by position
            self._bad_line_widths.append(len(bad_line))
            return [MALFORMED_MARKER] + [''] * (width - 1)

        return pd.read_csv(
            file_path,
            encoding=encoding,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=False,
            on_bad_lines=keep_place,
            engine='python',
        ).fillna('')

    def parse(self, file_path: str) -> ParsedCSV:
        """
        Read a CSV and detect its format.

        Args:
            file_path: Path to the CSV file

        Returns:
            ParsedCSV with headers, row dictionaries and format tag

        Raises:
            ImportAbortedError: if the file holds no data rows
        """
        df = self.read_csv(file_path)
        if df.empty:
            raise ImportAbortedError(f"No data rows found in {file_path}")

        headers = list(df.columns)
        rows = [
            dict(record, _row_number=int(position) + 1)
            for position, record in zip(df.index, df.to_dict('records'))
        ]
        parsed = ParsedCSV(
            headers=headers,
            rows=rows,
            format=detect_format(headers),
            skipped=list(self.skipped_rows),
        )
        logger.info(f"Detected {parsed.format.value} format with {parsed.row_count} rows")
        return parsed

    def write_csv(
        self,
        rows: List[Dict[str, Any]],
        file_path: str,
        encoding: str = 'utf-8',
        columns: Optional[List[str]] = None,
    ) -> None:
        """
        Write records to a CSV file.

        Args:
            rows: Records to write
            file_path: Output file path
            encoding: Encoding to use
            columns: Optional column order
        """
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        df = pd.DataFrame(rows, columns=columns)
        logger.info(f"Writing CSV file: {file_path} ({len(df)} rows)")
        df.fillna('').astype(str).to_csv(
            file_path,
            encoding=encoding,
            index=False,
            lineterminator='\n',  # Use Unix line endings
        )
        logger.info(f"Successfully wrote CSV file: {file_path}")

    def analyze_csv(self, file_path: str) -> Dict[str, Any]:
        """
        Analyze a CSV file and return metadata.

        Args:
            file_path: Path to the CSV file

        Returns:
            Dictionary with analysis results
        """
        df = self.read_csv(file_path)

        analysis = {
            'row_count': len(df),
            'column_count': len(df.columns),
            'columns': list(df.columns),
            'format': detect_format(df.columns).value,
            'missing_values': {col: int((df[col].str.strip() == '').sum()) for col in df.columns},
            'sample_rows': df.head(10).to_dict('records'),
        }

        logger.info(f"CSV Analysis: {analysis['row_count']} rows, {analysis['column_count']} columns")
        return analysis
