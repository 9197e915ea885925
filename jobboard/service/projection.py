from __future__ import annotations

from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Iterable, Mapping, Union

from jobboard.storage.models import Company, Job

Record = Union[Mapping[str, Any], Any]

COMPANY_PUBLIC_FIELDS = (
    "id",
    "name",
    "website",
    "headquarter",
    "logo",
    "description",
    "email",
    "email_verified_at",
    "created_at",
    "updated_at",
)
JOB_PUBLIC_FIELDS = (
    "id",
    "title",
    "description",
    "type",
    "application_link",
    "company_id",
    "created_at",
    "updated_at",
)


def _as_mapping(record: Record) -> Mapping[str, Any]:
    if is_dataclass(record) and not isinstance(record, type):
        return asdict(record)
    if isinstance(record, Mapping):
        return record
    raise TypeError(f"cannot project {type(record).__name__}")


def only(record: Record, keys: Iterable[str]) -> Dict[str, Any]:
    """New dict holding just ``keys`` that exist on ``record``."""
    source = _as_mapping(record)
    return {key: source[key] for key in keys if key in source}


def exclude(record: Record, keys: Iterable[str]) -> Dict[str, Any]:
    """New dict holding every field of ``record`` except ``keys``."""
    source = _as_mapping(record)
    dropped = set(keys)
    return {key: value for key, value in source.items() if key not in dropped}


def public_company(company: Company) -> Dict[str, Any]:
    return only(company, COMPANY_PUBLIC_FIELDS)


def public_job(job: Job) -> Dict[str, Any]:
    return only(job, JOB_PUBLIC_FIELDS)
