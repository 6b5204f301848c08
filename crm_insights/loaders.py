"""Load JSON exports into engine input records (used by the CLIs)."""

from pathlib import Path
from typing import TypeVar

from pydantic import TypeAdapter

from crm_insights.logger import log

T = TypeVar("T")


def load_records(path: str | Path, record_type: type[T]) -> list[T]:
    """Validate a JSON array file into a list of ``record_type`` dataclasses.

    Raises:
        FileNotFoundError: if ``path`` does not exist.
        pydantic.ValidationError: if a record does not match the dataclass.
    """
    path = Path(path)
    records = TypeAdapter(list[record_type]).validate_json(path.read_bytes())
    log.info(f"Loaded {len(records):,} {record_type.__name__} records from {path}")
    return records
