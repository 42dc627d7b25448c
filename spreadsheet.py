"""Parsing of bulk product upload sheets (.xlsx, .xls, .csv)."""
import csv
import io
import math
import os
import zipfile
from dataclasses import dataclass

import openpyxl
import xlrd
from openpyxl.utils.exceptions import InvalidFileException

HEADER_FIELDS = {
    'Product Name': 'product_name',
    'Category': 'category',
    'Subcategory': 'subcategory',
    'Brand': 'brand',
    'Price (INR)': 'price',
    'Discount (%)': 'discount_percent',
    'Final Price (INR)': 'final_price',
    'Product Description': 'product_description',
    'Key Features': 'key_features',
    'Product Type': 'product_type',
    'Image URL 1': 'image_url_1',
    'Image URL 2': 'image_url_2',
    'Image URL 3': 'image_url_3',
    'Image URL 4': 'image_url_4',
    'Image URL 5': 'image_url_5',
    'Stock': 'stock',
    'Extra Options': 'extra_options',
    'Size Options': 'size_options',
    'Seller Name': 'seller_name',
    'Items Temp Qty': 'items_temp_qty',
    'Return Policy': 'return_policy',
}

FLOAT_FIELDS = ('price', 'discount_percent', 'final_price')
INT_FIELDS = ('stock', 'items_temp_qty')


class SpreadsheetError(Exception):
    pass


@dataclass
class ProductRow:
    """One product line of an upload sheet."""

    product_name: str = ""
    category: str = ""
    subcategory: str = ""
    brand: str = ""
    price: float = 0.0
    discount_percent: float = 0.0
    final_price: float = 0.0
    product_description: str = ""
    key_features: str = ""
    product_type: str = ""
    image_url_1: str = ""
    image_url_2: str = ""
    image_url_3: str = ""
    image_url_4: str = ""
    image_url_5: str = ""
    stock: int = 0
    extra_options: str = ""
    size_options: str = ""
    seller_name: str = ""
    items_temp_qty: int = 0
    return_policy: str = ""

    @property
    def images(self):
        urls = [self.image_url_1, self.image_url_2, self.image_url_3, self.image_url_4, self.image_url_5]
        return [u for u in urls if u]


def _to_number(value, cast):
    if value in (None, ''):
        return cast(0)
    if isinstance(value, str):
        value = value.replace(',', '').strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return cast(0)
    # inf and nan count as invalid
    return cast(number) if math.isfinite(number) else cast(0)


def _to_text(value):
    if value is None:
        return ''
    # Excel stores whole numbers as floats
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def rows_from_records(headers, records):
    """Turn a header row and value rows into ProductRows, skipping blank lines."""
    columns = [HEADER_FIELDS.get(_to_text(h)) for h in headers]
    rows = []
    for record in records:
        if not any(_to_text(v) for v in record):
            continue
        values = {}
        for name, value in zip(columns, record):
            if not name:
                continue
            if name in FLOAT_FIELDS:
                values[name] = _to_number(value, float)
            elif name in INT_FIELDS:
                values[name] = _to_number(value, int)
            else:
                values[name] = _to_text(value)
        rows.append(ProductRow(**values))
    return rows


def _read_xlsx(stream):
    workbook = openpyxl.load_workbook(stream, read_only=True, data_only=True)
    try:
        sheet = workbook.worksheets[0]
        records = list(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()
    return records


def _read_xls(stream):
    book = xlrd.open_workbook(file_contents=stream.read())
    sheet = book.sheet_by_index(0)
    return [sheet.row_values(i) for i in range(sheet.nrows)]


def _read_csv(stream):
    text = stream.read()
    if isinstance(text, bytes):
        text = text.decode('utf-8-sig')
    return list(csv.reader(io.StringIO(text)))


READERS = {'.xlsx': _read_xlsx, '.xls': _read_xls, '.csv': _read_csv}


def parse_product_sheet(source, filename=None):
    """
    Parse the first sheet of an upload file into ProductRows.

    `source` is a path or a binary file object (e.g. a werkzeug FileStorage);
    the format is chosen from the file extension. Headers that are not
    recognized are ignored and missing cells default to empty text or zero.
    """
    if filename is None:
        filename = source if isinstance(source, str) else getattr(source, 'filename', '')
    extension = os.path.splitext(filename or '')[1].lower()
    if extension not in READERS:
        raise SpreadsheetError('Unsupported file type. Please upload an .xlsx, .xls or .csv file')

    try:
        if isinstance(source, str):
            with open(source, 'rb') as f:
                records = READERS[extension](io.BytesIO(f.read()))
        else:
            stream = getattr(source, 'stream', source)
            records = READERS[extension](io.BytesIO(stream.read()))
    except (OSError, ValueError, KeyError, zipfile.BadZipFile, InvalidFileException, csv.Error, xlrd.XLRDError) as e:
        raise SpreadsheetError(f'Could not read spreadsheet: {e}') from e

    if not records:
        raise SpreadsheetError('The spreadsheet is empty')
    headers, body = records[0], records[1:]
    if 'product_name' not in [HEADER_FIELDS.get(_to_text(h)) for h in headers]:
        raise SpreadsheetError('Missing "Product Name" column')
    return rows_from_records(headers, body)
