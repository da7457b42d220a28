"""Bulk import of watches from a CSV/XLSX sheet.

Usage:
  python catalog_import.py --file products.xlsx [--mongodb-uri mongodb://...] [--dry-run]
"""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd

from config import Config
from models import Product, parse_number

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["name", "price", "category", "description"]
OPTIONAL_COLUMNS = ["old_price", "color", "image"]
ALLOWED_EXTENSIONS = {".csv", ".xlsx", ".xls"}


@dataclass
class ValidationError:
    row_number: int
    message: str

    def __str__(self) -> str:
        return f"Row {self.row_number}: {self.message}"


class ProductImporter:
    def __init__(self, store) -> None:
        self.store = store

    def run(self, source: Any, filename: str | None = None, dry_run: bool = False) -> dict[str, Any]:
        frame = self._load_file(source, filename)

        missing = [column for column in REQUIRED_COLUMNS if column not in frame.columns]
        if missing:
            return {
                "ok": False,
                "created": 0,
                "updated": 0,
                "skipped": 0,
                "errors": [f"Missing required column(s): {', '.join(missing)}"],
            }

        products: list[Product] = []
        errors: list[ValidationError] = []
        for index, row in frame.iterrows():
            row_number = index + 2
            row_errors = self._validate_row(row, row_number)
            if row_errors:
                errors.extend(row_errors)
                continue
            products.append(self._map_row(row))

        skipped = len(frame) - len(products)
        if dry_run:
            return {"ok": True, "created": len(products), "updated": 0, "skipped": skipped,
                    "errors": [str(e) for e in errors]}

        created, updated = self._persist(products)
        logger.info("Catalog import: %d created, %d updated, %d skipped", created, updated, skipped)
        return {"ok": True, "created": created, "updated": updated, "skipped": skipped,
                "errors": [str(e) for e in errors]}

    def _load_file(self, source: Any, filename: str | None) -> pd.DataFrame:
        if isinstance(source, (str, Path)):
            path = Path(source)
            if not path.exists():
                raise FileNotFoundError(f"File not found: {source}")
            filename = filename or path.name
        else:
            filename = filename or getattr(source, "filename", "") or ""
            source = getattr(source, "stream", source)

        suffix = Path(filename).suffix.lower()
        if suffix not in ALLOWED_EXTENSIONS:
            raise ValueError("Only CSV/XLS/XLSX files are supported")
        if suffix == ".csv":
            frame = pd.read_csv(source, dtype=str, keep_default_na=False, skip_blank_lines=False)
        else:
            frame = pd.read_excel(source, dtype=str)

        frame.columns = [str(column).strip().lower().replace(" ", "_") for column in frame.columns]
        frame = frame.fillna("")
        if frame.empty:
            return frame
        # Blank rows are dropped but keep their index so row numbers match the sheet.
        return frame[frame.apply(lambda r: any(str(v).strip() for v in r), axis=1)]

    def _validate_row(self, row: pd.Series, row_number: int) -> list[ValidationError]:
        errors: list[ValidationError] = []
        for column in REQUIRED_COLUMNS:
            if str(row[column]).strip() == "":
                errors.append(ValidationError(row_number, f"'{column}' cannot be empty"))
        if errors:
            return errors

        price = self._to_number(row["price"], row_number, "price", errors)
        old_price = self._to_number(row.get("old_price", ""), row_number, "old_price", errors)
        if price is not None and price <= 0:
            errors.append(ValidationError(row_number, "price must be greater than zero"))
        if price is not None and old_price and old_price < price:
            errors.append(ValidationError(row_number, "old_price cannot be lower than price"))
        return errors

    @staticmethod
    def _to_number(value: Any, row_number: int, column: str, errors: list[ValidationError]) -> float | None:
        text = str(value).strip()
        if not text:
            return 0.0
        number = parse_number(text, None)
        if number is None:
            errors.append(ValidationError(row_number, f"Invalid numeric value '{value}' in '{column}'"))
            return None
        if number < 0:
            errors.append(ValidationError(row_number, f"'{column}' cannot be negative"))
            return None
        return number

    @staticmethod
    def _map_row(row: pd.Series) -> Product:
        return Product(
            name=str(row["name"]).strip(),
            price=row["price"],
            old_price=row.get("old_price", ""),
            category=str(row["category"]).strip(),
            description=str(row["description"]).strip(),
            color=str(row.get("color", "")).strip(),
            image=str(row.get("image", "")).strip(),
        )

    def _persist(self, products: list[Product]) -> tuple[int, int]:
        created = 0
        updated = 0
        for product in products:
            doc = product.to_document()
            doc.pop("created_at")
            doc["updated_at"] = datetime.now()
            result = self.store.products.update_one(
                {"name": product.name},
                {"$set": doc, "$setOnInsert": {"created_at": datetime.now()}},
                upsert=True,
            )
            if result.upserted_id is not None:
                created += 1
            else:
                updated += 1
        return created, updated


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import watches into the AM Store catalog")
    parser.add_argument("--file", required=True, help="Path to CSV/XLSX file")
    parser.add_argument("--mongodb-uri", default=Config.MONGODB_URI, help="MongoDB connection URI")
    parser.add_argument("--db-name", default=Config.MONGODB_DB, help="Database name")
    parser.add_argument("--dry-run", action="store_true", help="Validate only, skip database writes")
    return parser.parse_args()


def main() -> None:
    from database import StoreDatabase

    args = parse_args()
    importer = ProductImporter(StoreDatabase.from_uri(args.mongodb_uri, args.db_name))

    try:
        result = importer.run(args.file, dry_run=args.dry_run)
    except Exception as exc:
        print(json.dumps({"ok": False, "errors": [str(exc)]}, indent=2, ensure_ascii=False))
        raise SystemExit(1)

    print(json.dumps(result, indent=2, default=str, ensure_ascii=False))
    if not result["ok"]:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
