"""
Seed script for the Community Watch Hub record store.

Usage:
  - Dry run (default): python scripts/seed_db.py
  - Apply to configured store: python scripts/seed_db.py --apply
  - Force the in-memory store even if Firebase is configured: python scripts/seed_db.py --apply --force-mock

Behavior:
  - Loads `db_seed.json` from repo root.
  - Validates every record against its model (companies, principals, reports)
    so unknown role/status literals are refused before anything is written.
  - Writes through `app.config.firebase.get_store()`; records that already
    exist are left untouched.

NOTE: When applying to real Firestore, ensure `FIREBASE_CREDENTIALS_PATH` and `USE_MOCK_DB=false` are set in `.env`.
"""

import argparse
import json
import os
from typing import Dict, List, Tuple

from pydantic import BaseModel, ValidationError

from app.config.firebase import get_store
from app.core.settings import settings
from app.models.base import to_record
from app.models.principal import Company, Principal, COMPANIES_COLLECTION, PRINCIPALS_COLLECTION
from app.models.report import Report, REPORTS_COLLECTION
from app.store.base import RecordStore, StoreConflict

# Companies first so principals can reference them
SEED_MODELS: List[Tuple[str, type]] = [
    (COMPANIES_COLLECTION, Company),
    (PRINCIPALS_COLLECTION, Principal),
    (REPORTS_COLLECTION, Report),
]


def load_seed(path: str = "./db_seed.json") -> dict:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def build_records(seed: dict) -> List[Tuple[str, BaseModel]]:
    records = []
    for collection, model in SEED_MODELS:
        docs: Dict[str, dict] = seed.get(collection, {})
        for doc_id, data in docs.items():
            try:
                records.append((collection, model(id=doc_id, **data)))
            except ValidationError as e:
                raise SystemExit(f"Invalid seed record {collection}/{doc_id}:\n{e}")

    unknown = set(seed) - {collection for collection, _ in SEED_MODELS}
    if unknown:
        print(f"Skipping unknown collections: {sorted(unknown)}")
    return records


def write_to_store(store: RecordStore, records: List[Tuple[str, BaseModel]], apply: bool = False):
    for collection, record in records:
        print(f"Preparing: {collection}/{record.id}")
        if not apply:
            continue
        try:
            store.create(collection, to_record(record, exclude={"id"}), record_id=record.id)
            print(f"Wrote: {collection}/{record.id}")
        except StoreConflict:
            print(f"Exists, skipped: {collection}/{record.id}")


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--apply", action="store_true", help="Write seed to the store instead of dry-run")
    parser.add_argument("--force-mock", action="store_true", help="Force use of the in-memory store even if Firebase is configured")
    args = parser.parse_args()

    seed_path = os.path.join(os.getcwd(), "db_seed.json")
    if not os.path.exists(seed_path):
        print(f"Seed file not found: {seed_path}")
        return

    records = build_records(load_seed(seed_path))

    if args.force_mock:
        print("Forcing in-memory store for this run.")
        settings.USE_MOCK_DB = True

    write_to_store(get_store(), records, apply=args.apply)

    if args.apply:
        print("Seeding completed.")
    else:
        print("Dry run complete. Re-run with --apply to write to the store.")


if __name__ == "__main__":
    main()
