"""
Tests for CSV Handler Module
"""

import pytest
from pathlib import Path
import tempfile
import os

from catalog_import.csv_handler import CSVHandler
from catalog_import.detector import CSVFormat
from catalog_import.exceptions import ImportAbortedError


def write_temp_csv(content: str) -> str:
    with tempfile.NamedTemporaryFile(mode='w', suffix='.csv', delete=False, encoding='utf-8', newline='') as f:
        f.write(content)
        return f.name


class TestCSVHandler:
    """Test cases for CSVHandler."""

    def setup_method(self):
        """Set up test fixtures."""
        self.handler = CSVHandler()
        self.rows = [
            {'name': 'Product 1', 'price': '19.99', 'description': 'First'},
            {'name': 'Product 2', 'price': '29.99', 'description': 'Second'},
            {'name': 'Product 3', 'price': '39.99', 'description': ''},
        ]
        self.paths = []

    def teardown_method(self):
        for path in self.paths:
            if os.path.exists(path):
                os.unlink(path)

    def temp_csv(self, content: str) -> str:
        path = write_temp_csv(content)
        self.paths.append(path)
        return path

    def test_write_and_read_csv(self):
        """Test writing and reading CSV file."""
        path = self.temp_csv('')
        self.handler.write_csv(self.rows, path)

        df = self.handler.read_csv(path)

        assert len(df) == 3
        assert list(df.columns) == ['name', 'price', 'description']
        assert df.iloc[0]['name'] == 'Product 1'
        # Cells stay strings and blanks stay empty
        assert df.iloc[1]['price'] == '29.99'
        assert df.iloc[2]['description'] == ''

    def test_blank_rows_are_skipped(self):
        path = self.temp_csv('name,price,description\nA,1,x\n,,\n\nB,2,y\n')

        df = self.handler.read_csv(path)

        assert list(df['name']) == ['A', 'B']

    def test_header_whitespace_and_bom_are_stripped(self):
        path = self.temp_csv('\ufeff name , price ,description\nA,1,x\n')

        df = self.handler.read_csv(path)

        assert list(df.columns) == ['name', 'price', 'description']

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            self.handler.read_csv('does/not/exist.csv')

    def test_empty_file_aborts(self):
        path = self.temp_csv('')

        with pytest.raises(ImportAbortedError):
            self.handler.parse(path)

    def test_header_only_file_aborts(self):
        path = self.temp_csv('name,price,description\n')

        with pytest.raises(ImportAbortedError):
            self.handler.parse(path)

    def test_parse_detects_standard_format(self):
        path = self.temp_csv(
            'name,description,price,stock_quantity,category,image_url,is_featured\n'
            'Acrylic Painting,desc,199.99,10,Paintings,http://x/img.jpg,true\n'
        )

        parsed = self.handler.parse(path)

        assert parsed.format == CSVFormat.STANDARD
        assert parsed.row_count == 1
        assert parsed.headers[0] == 'name'
        assert parsed.rows[0]['price'] == '199.99'

    def test_parse_detects_shopify_format(self):
        path = self.temp_csv(
            'Handle,Title,Body (HTML),Variant Price\n'
            'product-1,Poster,<p>Nice</p>,10.00\n'
        )

        parsed = self.handler.parse(path)

        assert parsed.format == CSVFormat.SHOPIFY

    def test_quoted_values_with_commas(self):
        path = self.temp_csv('name,price,description\n"Frame, large","$1,299.50","a, b"\n')

        parsed = self.handler.parse(path)

        assert parsed.rows[0]['name'] == 'Frame, large'
        assert parsed.rows[0]['price'] == '$1,299.50'

    def test_analyze_csv(self):
        """Test CSV analysis."""
        path = self.temp_csv('')
        self.handler.write_csv(self.rows, path)

        analysis = self.handler.analyze_csv(path)

        assert analysis['row_count'] == 3
        assert analysis['column_count'] == 3
        assert analysis['format'] == 'standard'
        assert analysis['missing_values']['description'] == 1
        assert 'name' in analysis['columns']

    def test_write_csv_creates_parent_directory(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / 'reports' / 'out.csv'
            self.handler.write_csv([{'type': 'error', 'message': 'Row 1: bad'}], str(path))

            assert path.exists()
            df = self.handler.read_csv(str(path))
            assert df.iloc[0]['message'] == 'Row 1: bad'

    def test_malformed_line_is_reported(self):
        path = self.temp_csv('name,price,description\nA,1,x\nB,2,y,EXTRA,MORE\nC,3,z\n')

        parsed = self.handler.parse(path)

        assert [row['name'] for row in parsed.rows] == ['A', 'C']
        assert parsed.skipped == ['Row 2: Malformed line skipped (5 fields, expected 3)']

    def test_row_numbers_follow_file_position(self):
        path = self.temp_csv('name,price,description\nA,1,x\n,,\n\nB,2,y\nC,3,z,EXTRA\nD,4,w\n')

        parsed = self.handler.parse(path)

        assert [(row['name'], row['_row_number']) for row in parsed.rows] == [('A', 1), ('B', 4), ('D', 6)]

    def test_malformed_first_row_aborts(self):
        path = self.temp_csv('name,price,description\nA,1,x,EXTRA\nB,2,y\n')

        with pytest.raises(ImportAbortedError):
            self.handler.parse(path)
