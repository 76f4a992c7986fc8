"""Bulk product import and export.

Imports accept the CSV layout ``name,description,price,stock,category,image_url``
(``image`` is read as an alias of ``image_url``) or the same columns in the first
sheet of an ``.xlsx`` workbook. Rows are validated one by one; bad rows are
reported and skipped, and the good ones are inserted in a single batch.
"""

import csv
import io
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
from zipfile import BadZipFile

import pydantic
from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from craftstore.core.errors import ValidationError
from craftstore.core.text import category_slug
from craftstore.repositories.categories import CategoryRepository
from craftstore.repositories.products import ProductRepository
from craftstore.schemas import ImportReport, ProductCreate, ProductFilters, ProductOut

logger = logging.getLogger("craftstore.catalog_io")

COLUMNS = ["name", "description", "price", "stock", "category", "image_url"]
REQUIRED_COLUMNS = ("name", "description", "price", "category", "image_url")
CSV_MEDIA_TYPE = "text/csv"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
TEMPLATE_ROW = ["Handwoven basket", "Seagrass basket woven by hand", "850.00", "10", "baskets", "/uploads/basket.jpg"]
MAX_REPORTED_ERRORS = 50


def _cell(value) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _normalise_row(row: Dict[str, object]) -> Dict[str, str]:
    normalised = {_cell(key).lower(): _cell(value) for key, value in row.items() if key is not None}
    if not normalised.get("image_url") and normalised.get("image"):
        normalised["image_url"] = normalised["image"]
    return normalised


def _decimal(value: str) -> Optional[Decimal]:
    try:
        number = Decimal(value)
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def read_rows(filename: str, data: bytes) -> List[Dict[str, str]]:
    """Decode an uploaded CSV or XLSX file into header-keyed rows."""
    suffix = Path(filename or "").suffix.lower()
    if suffix == ".csv":
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ValidationError("CSV files must be UTF-8 encoded") from exc
        return [_normalise_row(row) for row in csv.DictReader(io.StringIO(text))]

    if suffix == ".xlsx":
        try:
            workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except (BadZipFile, InvalidFileException, OSError, KeyError, ValueError) as exc:
            raise ValidationError("Could not read the uploaded workbook") from exc
        try:
            rows = workbook.active.iter_rows(values_only=True)
            header = next(rows, None)
            if not header:
                return []
            keys = [_cell(value) for value in header]
            return [
                _normalise_row(dict(zip(keys, values)))
                for values in rows
                if any(value is not None for value in values)
            ]
        finally:
            workbook.close()

    raise ValidationError("Upload a .csv or .xlsx file", context={"filename": filename})


def parse_row(row: Dict[str, str], category_ids: Dict[str, str]) -> ProductCreate:
    """Turn one import row into a product payload, raising ValueError with a readable reason."""
    missing = [column for column in REQUIRED_COLUMNS if not row.get(column)]
    if missing:
        raise ValueError(f"missing required fields: {', '.join(missing)}")

    slug = category_slug(row["category"])
    category_id = category_ids.get(slug)
    if category_id is None:
        raise ValueError(f"invalid category \"{slug}\" for product \"{row['name']}\"")

    price = _decimal(row["price"])
    if price is None:
        raise ValueError(f"invalid price \"{row['price']}\" for product \"{row['name']}\"")

    stock_value = row.get("stock") or "0"
    stock = _decimal(stock_value)
    if stock is None or stock != stock.to_integral_value():
        raise ValueError(f"invalid stock \"{stock_value}\" for product \"{row['name']}\"")

    try:
        return ProductCreate(
            name=row["name"],
            description=row["description"],
            price=price,
            stock=int(stock),
            image=row["image_url"],
            category_id=category_id,
            artisan=row.get("artisan") or None,
        )
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise ValueError(f"{field}: {first['msg']} for product \"{row['name']}\"") from None


def parse_rows(rows: Iterable[Dict[str, str]], category_ids: Dict[str, str]) -> Tuple[List[ProductCreate], List[str]]:
    products: List[ProductCreate] = []
    errors: List[str] = []
    # row 1 is the header
    for line, row in enumerate(rows, start=2):
        try:
            products.append(parse_row(row, category_ids))
        except ValueError as exc:
            errors.append(f"Row {line}: {exc}")
    return products, errors


def import_products(
    products: ProductRepository, categories: CategoryRepository, filename: str, data: bytes
) -> ImportReport:
    rows = read_rows(filename, data)
    category_ids = {category.slug: category.id for category in categories.list_categories()}
    payloads, errors = parse_rows(rows, category_ids)
    if not payloads:
        logger.warning("product_import_rejected", extra={"source_file": filename, "errors": len(errors)})
        raise ValidationError("No valid products to import", context={"errors": errors[:5]})

    imported = products.bulk_create_products(payloads)
    logger.info(
        "product_import_completed", extra={"source_file": filename, "imported": imported, "failed": len(errors)}
    )
    return ImportReport(imported=imported, errors=errors[:MAX_REPORTED_ERRORS])


def _export_rows(items: Iterable[ProductOut], slugs: Dict[str, str]) -> Iterable[List[str]]:
    for product in items:
        yield [
            product.name,
            product.description,
            str(product.price),
            str(product.stock),
            slugs.get(product.category_id or "", ""),
            product.image,
        ]


def _csv_bytes(rows: Iterable[List[str]]) -> io.BytesIO:
    text = io.StringIO()
    writer = csv.writer(text)
    writer.writerow(COLUMNS)
    writer.writerows(rows)
    return io.BytesIO(text.getvalue().encode("utf-8"))


def _xlsx_bytes(rows: Iterable[List[str]]) -> io.BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = "Products"
    ws.append(COLUMNS)
    for row in rows:
        ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return buffer


def _render(rows: Iterable[List[str]], fmt: str) -> Tuple[io.BytesIO, str]:
    if fmt == "xlsx":
        return _xlsx_bytes(rows), XLSX_MEDIA_TYPE
    return _csv_bytes(rows), CSV_MEDIA_TYPE


def export_products(
    products: ProductRepository, categories: CategoryRepository, fmt: str = "csv"
) -> Tuple[io.BytesIO, str, str]:
    """Render the active catalog in the import layout. Returns (buffer, media type, filename)."""
    slugs = {category.id: category.slug for category in categories.list_categories()}
    items = products.list_products(ProductFilters())
    buffer, media_type = _render(_export_rows(items, slugs), fmt)
    logger.info("product_export_generated", extra={"format": fmt, "count": len(items)})
    return buffer, media_type, f"products_export.{fmt}"


def import_template(fmt: Optional[str] = "csv") -> Tuple[io.BytesIO, str, str]:
    fmt = fmt or "csv"
    buffer, media_type = _render([TEMPLATE_ROW], fmt)
    return buffer, media_type, f"product_import_template.{fmt}"
