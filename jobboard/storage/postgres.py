from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from psycopg import errors
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from jobboard.logging import get_logger
from jobboard.storage.errors import ConstraintViolation
from jobboard.storage.models import (
    Company,
    Job,
    JobType,
    Page,
    PageInfo,
    PersistedToken,
    TokenType,
    offset_for,
)

_SCHEMA = """
DO $$ BEGIN
    CREATE TYPE token_type AS ENUM ('REFRESH', 'EMAIL_VERIFICATION', 'RESET_PASSWORD');
EXCEPTION WHEN duplicate_object THEN NULL;
END $$;

DO $$ BEGIN
    CREATE TYPE job_type AS ENUM ('FULL_TIME', 'PART_TIME', 'CONTRACT', 'INTERNSHIP');
EXCEPTION WHEN duplicate_object THEN NULL;
END $$;

CREATE TABLE IF NOT EXISTS company (
    id UUID PRIMARY KEY,
    name TEXT NOT NULL,
    website TEXT NOT NULL,
    headquarter TEXT NOT NULL,
    logo TEXT NOT NULL,
    description TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    email_verified_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS job (
    id UUID PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT NOT NULL,
    type job_type NOT NULL,
    application_link TEXT NOT NULL,
    company_id UUID NOT NULL REFERENCES company(id) ON DELETE CASCADE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS token (
    id UUID PRIMARY KEY,
    secret TEXT NOT NULL,
    type token_type NOT NULL,
    owner_id UUID NOT NULL REFERENCES company(id) ON DELETE CASCADE,
    blacklisted BOOLEAN NOT NULL DEFAULT false,
    expires_at TIMESTAMPTZ NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS token_secret_type_idx ON token (secret, type);
CREATE INDEX IF NOT EXISTS token_owner_type_idx ON token (owner_id, type);
CREATE INDEX IF NOT EXISTS job_company_idx ON job (company_id, created_at DESC);
"""

_COMPANY_COLUMNS = ("name", "website", "headquarter", "logo", "description", "password_hash", "email_verified_at")
_JOB_COLUMNS = ("title", "description", "type", "application_link")


def _company_from_row(row: Dict[str, Any]) -> Company:
    return Company(
        id=str(row["id"]),
        name=row["name"],
        website=row["website"],
        headquarter=row["headquarter"],
        logo=row["logo"],
        description=row["description"],
        email=row["email"],
        password_hash=row["password_hash"],
        email_verified_at=row.get("email_verified_at"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _job_from_row(row: Dict[str, Any]) -> Job:
    return Job(
        id=str(row["id"]),
        title=row["title"],
        description=row["description"],
        type=JobType(row["type"]),
        application_link=row["application_link"],
        company_id=str(row["company_id"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _token_from_row(row: Dict[str, Any]) -> PersistedToken:
    return PersistedToken(
        id=str(row["id"]),
        secret=row["secret"],
        type=TokenType(row["type"]),
        owner_id=str(row["owner_id"]),
        blacklisted=bool(row["blacklisted"]),
        expires_at=row["expires_at"],
        created_at=row["created_at"],
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _search_clause(search: Optional[str], *columns: str) -> tuple[str, list[Any]]:
    """Case-insensitive literal substring match over ``columns``."""
    if not search:
        return "", []
    pattern = f"%{_escape_like(search)}%"
    clause = " OR ".join(f"{col} ILIKE %s ESCAPE '\\'" for col in columns)
    return f"({clause})", [pattern] * len(columns)


class PostgresStore:
    """Postgres-backed store for companies, jobs and stateful tokens."""

    def __init__(self, dsn: str, *, ensure_schema: bool = True) -> None:
        self.dsn = dsn
        self.logger = get_logger(__name__)
        self.pool = ConnectionPool(
            self.dsn,
            min_size=2,
            max_size=10,
            kwargs={"row_factory": dict_row, "autocommit": False},
        )
        if ensure_schema:
            self._ensure_schema()

    def _connect(self):
        return self.pool.connection()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(_SCHEMA)

    def verify_connection(self) -> None:
        with self._connect() as conn:
            conn.execute("SELECT 1")

    def close(self) -> None:
        self.pool.close()

    def _paginate(
        self,
        table: str,
        page: int,
        limit: int,
        where: List[str],
        params: List[Any],
    ) -> tuple[list[Dict[str, Any]], PageInfo]:
        where_sql = f"WHERE {' AND '.join(where)}" if where else ""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM {table} {where_sql} ORDER BY created_at DESC LIMIT %s OFFSET %s",
                (*params, limit, offset_for(page, limit)),
            ).fetchall()
            count_row = conn.execute(
                f"SELECT COUNT(*) AS total FROM {table} {where_sql}", tuple(params)
            ).fetchone()
        total = int(count_row["total"]) if count_row else 0
        return rows, PageInfo.compute(total, page, limit)

    # companies
    def create_company(
        self,
        *,
        name: str,
        website: str,
        headquarter: str,
        logo: str,
        description: str,
        email: str,
        password_hash: str,
    ) -> Company:
        company_id = str(uuid.uuid4())
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    INSERT INTO company (id, name, website, headquarter, logo, description, email, password_hash)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (company_id, name, website, headquarter, logo, description, email, password_hash),
                ).fetchone()
        except errors.UniqueViolation:
            raise ConstraintViolation("email already exists", {"field": "email"})
        return _company_from_row(row)

    def get_company(self, company_id: str) -> Optional[Company]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM company WHERE id = %s", (company_id,)).fetchone()
        return _company_from_row(row) if row else None

    def get_company_by_email(self, email: str) -> Optional[Company]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM company WHERE email = %s", (email,)).fetchone()
        return _company_from_row(row) if row else None

    def update_company(self, company_id: str, **fields) -> Optional[Company]:
        unknown = set(fields) - set(_COMPANY_COLUMNS)
        if unknown:
            raise ValueError(f"unknown company fields: {sorted(unknown)}")
        if not fields:
            return self.get_company(company_id)
        assignments = ", ".join(f"{col} = %s" for col in fields)
        with self._connect() as conn:
            row = conn.execute(
                f"UPDATE company SET {assignments}, updated_at = now() WHERE id = %s RETURNING *",
                (*fields.values(), company_id),
            ).fetchone()
        return _company_from_row(row) if row else None

    def list_companies(
        self, page: int, limit: int, search: Optional[str] = None
    ) -> Page[Company]:
        clause, params = _search_clause(search, "name", "description")
        rows, info = self._paginate("company", page, limit, [clause] if clause else [], params)
        return Page(info=info, data=[_company_from_row(r) for r in rows])

    # jobs
    def create_job(
        self,
        company_id: str,
        *,
        title: str,
        description: str,
        type: JobType,
        application_link: str,
    ) -> Job:
        job_id = str(uuid.uuid4())
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    INSERT INTO job (id, title, description, type, application_link, company_id)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (job_id, title, description, JobType(type).value, application_link, company_id),
                ).fetchone()
        except errors.ForeignKeyViolation:
            raise ConstraintViolation("company does not exist", {"company_id": company_id})
        return _job_from_row(row)

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM job WHERE id = %s", (job_id,)).fetchone()
        return _job_from_row(row) if row else None

    def update_job(self, job_id: str, **fields) -> Optional[Job]:
        unknown = set(fields) - set(_JOB_COLUMNS)
        if unknown:
            raise ValueError(f"unknown job fields: {sorted(unknown)}")
        if "type" in fields:
            fields["type"] = JobType(fields["type"]).value
        if not fields:
            return self.get_job(job_id)
        assignments = ", ".join(f"{col} = %s" for col in fields)
        with self._connect() as conn:
            row = conn.execute(
                f"UPDATE job SET {assignments}, updated_at = now() WHERE id = %s RETURNING *",
                (*fields.values(), job_id),
            ).fetchone()
        return _job_from_row(row) if row else None

    def delete_job(self, job_id: str) -> bool:
        with self._connect() as conn:
            result = conn.execute("DELETE FROM job WHERE id = %s", (job_id,))
            return result.rowcount > 0

    def list_jobs(
        self,
        page: int,
        limit: int,
        search: Optional[str] = None,
        company_id: Optional[str] = None,
    ) -> Page[Job]:
        where: List[str] = []
        params: List[Any] = []
        if company_id is not None:
            where.append("company_id = %s")
            params.append(company_id)
        clause, search_params = _search_clause(search, "title", "description")
        if clause:
            where.append(clause)
            params.extend(search_params)
        rows, info = self._paginate("job", page, limit, where, params)
        return Page(info=info, data=[_job_from_row(r) for r in rows])

    # tokens
    def create_token(
        self,
        secret: str,
        token_type: TokenType,
        owner_id: str,
        expires_at: datetime,
    ) -> PersistedToken:
        token_id = str(uuid.uuid4())
        try:
            with self._connect() as conn:
                row = conn.execute(
                    """
                    INSERT INTO token (id, secret, type, owner_id, expires_at)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (token_id, secret, TokenType(token_type).value, owner_id, expires_at),
                ).fetchone()
        except errors.ForeignKeyViolation:
            raise ConstraintViolation("token owner does not exist", {"owner_id": owner_id})
        return _token_from_row(row)

    def find_token(self, secret: str, token_type: TokenType) -> Optional[PersistedToken]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM token WHERE secret = %s AND type = %s LIMIT 1",
                (secret, TokenType(token_type).value),
            ).fetchone()
        return _token_from_row(row) if row else None

    def delete_token(self, token_id: str) -> bool:
        with self._connect() as conn:
            result = conn.execute("DELETE FROM token WHERE id = %s", (token_id,))
            return result.rowcount > 0

    def blacklist_token(self, token_id: str) -> bool:
        with self._connect() as conn:
            result = conn.execute(
                "UPDATE token SET blacklisted = true WHERE id = %s AND blacklisted = false",
                (token_id,),
            )
            return result.rowcount == 1

    def delete_tokens_for(self, owner_id: str, token_type: TokenType) -> int:
        with self._connect() as conn:
            result = conn.execute(
                "DELETE FROM token WHERE owner_id = %s AND type = %s",
                (owner_id, TokenType(token_type).value),
            )
            return result.rowcount

    def list_tokens_for(
        self, owner_id: str, token_type: Optional[TokenType] = None
    ) -> List[PersistedToken]:
        with self._connect() as conn:
            if token_type is None:
                rows = conn.execute(
                    "SELECT * FROM token WHERE owner_id = %s", (owner_id,)
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM token WHERE owner_id = %s AND type = %s",
                    (owner_id, TokenType(token_type).value),
                ).fetchall()
        return [_token_from_row(r) for r in rows]
