"""Social analytics CSV export ingestion pipeline.

Decodes comma- or semicolon-delimited exports, classifies them as account
overview or per-post content exports, maps the exporter's column spellings
onto the internal row shape and loads the rows together with one Upload
record in a single transaction.

Supported shapes:
  overview -> one row per day: Fecha | Impresiones | Me gusta | Nuevos seguidores | ...
  content  -> one row per post: ID del post | Fecha | Texto del post | Impresiones | ...

Rows and their Upload share one timestamp (``created_at`` / ``uploaded_at``);
see ``social_analytics.uploads`` for how that timestamp scopes later previews
and deletes.
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from social_analytics.models import ContentRow, OverviewRow, Upload, utcnow
from social_analytics.normalize import (
    coerce_datetime,
    coerce_int,
    coerce_post_id,
    normalize_key,
    normalize_row,
    parse_post_id,
    resolve_field,
)
from social_analytics.schema import ExportKind, ExportSchema, classify_export, get_export_schema

logger = logging.getLogger(__name__)

DEFAULT_DELIMITER = ","
SEMICOLON = ";"

# Smallest step used to keep a user's upload timestamps strictly increasing
_TIMESTAMP_STEP = timedelta(microseconds=1)


@dataclass
class DecodedFile:
    """Header and normalized records of one CSV file, in file order."""

    header: list[str] = field(default_factory=list)
    records: list[dict[str, str]] = field(default_factory=list)
    delimiter: str = DEFAULT_DELIMITER


@dataclass
class IngestResult:
    """Outcome of a completed ingestion."""

    kind: ExportKind
    rows_imported: int
    upload_id: int
    file_name: str
    uploaded_at: datetime
    delimiter: str = DEFAULT_DELIMITER
    warnings: list[str] = field(default_factory=list)


class IngestError(Exception):
    """Raised when ingestion cannot proceed."""

    reason = "ingest_error"


class EmptyFileError(IngestError):
    """Raised when the uploaded file has no header line."""

    reason = "empty_file"


class PersistenceError(IngestError):
    """Raised when the store rejects the rows; nothing from the file is kept."""

    reason = "ingest_failed"


# ---------------------------------------------------------------------------
# Delimiter detection and decoding
# ---------------------------------------------------------------------------


def delimiter_for_line(line: str) -> str:
    """Return ";" if the line has strictly more semicolons than commas, else ","."""
    return SEMICOLON if line.count(";") > line.count(",") else DEFAULT_DELIMITER


def detect_delimiter(file_path: Path) -> str:
    """Pick the field separator from the first line of a file.

    Detection is a heuristic: an unreadable file falls back to a comma
    instead of raising.
    """
    try:
        with open(file_path, "r", encoding="utf-8-sig", errors="replace", newline="") as f:
            first_line = f.readline()
    except OSError as exc:
        logger.warning("Could not read '%s' for delimiter detection: %s", file_path, exc)
        return DEFAULT_DELIMITER
    return delimiter_for_line(first_line.rstrip("\r\n"))


def _read_text(file_path: Path) -> str:
    """Read the file as UTF-8 (BOM tolerated), falling back to Latin-1."""
    data = file_path.read_bytes()
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.warning("'%s' is not valid UTF-8; decoding as Latin-1.", file_path.name)
        return data.decode("latin-1")


def decode_csv(file_path: Path, delimiter: str | None = None) -> DecodedFile:
    """Decode a CSV file into normalized records.

    Args:
        file_path: Path to the CSV file.
        delimiter: Field separator; detected from the first line when omitted.

    Returns:
        DecodedFile with the normalized header and one record per data line.

    Raises:
        IngestError: If the file cannot be read.
        EmptyFileError: If the file has no header line.
    """
    sep = delimiter or detect_delimiter(file_path)
    try:
        text = _read_text(file_path)
    except OSError as exc:
        raise IngestError(f"Failed to read file '{file_path.name}': {exc}") from exc

    reader = csv.DictReader(io.StringIO(text, newline=""), delimiter=sep)
    try:
        records = [normalize_row(raw) for raw in reader]
    except csv.Error as exc:
        raise IngestError(f"Malformed CSV in '{file_path.name}': {exc}") from exc

    if not reader.fieldnames:
        raise EmptyFileError("Uploaded file has no header line.")

    header: list[str] = []
    for label in reader.fieldnames:
        key = normalize_key(label)
        if key not in header:
            header.append(key)

    return DecodedFile(header=header, records=records, delimiter=sep)


def validate_upload(file_path: Path) -> None:
    """Validate an uploaded file before decoding.

    Raises:
        IngestError: If the file does not exist.
        EmptyFileError: If the file is empty.
    """
    if not file_path.exists():
        raise IngestError(f"File not found: {file_path}")
    if file_path.stat().st_size == 0:
        raise EmptyFileError("Uploaded file is empty.")


# ---------------------------------------------------------------------------
# Row builders
# ---------------------------------------------------------------------------


def build_overview_row(
    record: dict[str, str],
    owner_id: int,
    ingested_at: datetime,
    schema: ExportSchema,
    warnings: list[str] | None = None,
    line_no: int | None = None,
) -> OverviewRow:
    """Map one normalized overview record onto an OverviewRow.

    A missing or unparseable date defaults to the ingestion time.
    """
    raw_date = resolve_field(record, schema.overview_date)
    row_date = coerce_datetime(raw_date)
    if row_date is None:
        row_date = ingested_at
        if warnings is not None:
            detail = f"unparseable date '{raw_date}'" if raw_date else "no date"
            warnings.append(f"Row {line_no}: {detail}; used the import time.")

    metrics: dict[str, Any] = {
        attr: coerce_int(resolve_field(record, aliases))
        for attr, aliases in schema.overview_metrics.items()
    }
    return OverviewRow(owner_id=owner_id, date=row_date, created_at=ingested_at, **metrics)


def build_content_row(
    record: dict[str, str],
    owner_id: int,
    ingested_at: datetime,
    schema: ExportSchema,
    warnings: list[str] | None = None,
    line_no: int | None = None,
) -> ContentRow:
    """Map one normalized content record onto a ContentRow.

    A missing or malformed post identifier gets a time-based fallback; an
    unparseable publication date is left empty. Both are reported in warnings.
    """
    raw_id = resolve_field(record, schema.content_post_id)
    post_id = parse_post_id(raw_id)
    if post_id is None:
        post_id = coerce_post_id(raw_id)
        if warnings is not None:
            detail = f"invalid post id '{raw_id}'" if raw_id else "no post id"
            warnings.append(f"Row {line_no}: {detail}; generated id {post_id}.")

    raw_date = resolve_field(record, schema.content_date)
    published_at = coerce_datetime(raw_date)
    if published_at is None and raw_date and warnings is not None:
        warnings.append(f"Row {line_no}: unparseable date '{raw_date}'; left empty.")

    metrics: dict[str, Any] = {
        attr: coerce_int(resolve_field(record, aliases))
        for attr, aliases in schema.content_metrics.items()
    }
    return ContentRow(
        owner_id=owner_id,
        post_id=post_id,
        published_at=published_at,
        text=resolve_field(record, schema.content_text),
        url=resolve_field(record, schema.content_url),
        created_at=ingested_at,
        **metrics,
    )


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def next_upload_timestamp(session: Session, owner_id: int, now: datetime | None = None) -> datetime:
    """Return the timestamp for a new upload of this owner.

    Upload windows need a strictly increasing ``uploaded_at`` per owner. If
    the clock has not moved past the latest existing upload, step just past it.
    """
    candidate = now or utcnow()
    latest = (
        session.query(func.max(Upload.uploaded_at))
        .filter(Upload.owner_id == owner_id)
        .scalar()
    )
    if latest is not None and candidate <= latest:
        candidate = latest + _TIMESTAMP_STEP
    return candidate


def load_to_db(
    session: Session,
    decoded: DecodedFile,
    kind: ExportKind,
    owner_id: int,
    file_name: str,
    schema: ExportSchema,
    now: datetime | None = None,
) -> IngestResult:
    """Persist decoded records and their Upload record atomically.

    Rows are added in file order. Any store failure rolls back every row of
    the file and raises PersistenceError, so ``rows_imported`` never reports
    a partial import.
    """
    warnings: list[str] = []
    builder = build_overview_row if kind == "overview" else build_content_row

    try:
        ingested_at = next_upload_timestamp(session, owner_id, now)
        count = 0
        # Line 1 is the header
        for line_no, record in enumerate(decoded.records, start=2):
            session.add(builder(record, owner_id, ingested_at, schema, warnings, line_no))
            count += 1
        session.flush()

        upload = Upload(
            owner_id=owner_id,
            file_name=file_name,
            kind=kind,
            rows_imported=count,
            uploaded_at=ingested_at,
        )
        session.add(upload)
        session.commit()
    except (SQLAlchemyError, OverflowError) as exc:
        # sqlite3 raises OverflowError unwrapped for out-of-range integer binds
        session.rollback()
        logger.error("Persisting '%s' for owner %s failed: %s", file_name, owner_id, exc)
        raise PersistenceError(f"Could not store rows from '{file_name}'.") from exc

    for msg in warnings:
        logger.debug(msg)
    if warnings:
        logger.info("'%s': %d rows used fallback values.", file_name, len(warnings))

    return IngestResult(
        kind=kind,
        rows_imported=count,
        upload_id=upload.id,
        file_name=file_name,
        uploaded_at=ingested_at,
        delimiter=decoded.delimiter,
        warnings=warnings,
    )


def ingest_csv(
    session: Session,
    file_path: Path,
    original_filename: str,
    owner_id: int,
    schema: ExportSchema | None = None,
    now: datetime | None = None,
) -> IngestResult:
    """Full ingestion pipeline: decode, classify, and load one uploaded file.

    The file at ``file_path`` is a temporary copy and is deleted once it has
    been decoded, whatever the outcome.

    Args:
        session: SQLAlchemy session.
        file_path: Path to the saved upload.
        original_filename: File name as sent by the client.
        owner_id: Authenticated user id owning the rows.
        schema: Alias table; defaults to the configured one.
        now: Ingestion timestamp override (tests).

    Returns:
        IngestResult with the schema kind and number of rows imported.

    Raises:
        IngestError: If the file is missing, empty or unreadable.
        PersistenceError: If the rows could not be stored.
    """
    schema = schema or get_export_schema()
    try:
        validate_upload(file_path)
        decoded = decode_csv(file_path)
    finally:
        file_path.unlink(missing_ok=True)

    kind = classify_export(decoded.header, original_filename, schema)
    logger.info(
        "Decoded '%s': delimiter=%r kind=%s rows=%d",
        original_filename,
        decoded.delimiter,
        kind,
        len(decoded.records),
    )

    result = load_to_db(session, decoded, kind, owner_id, original_filename, schema, now)
    logger.info(
        "Import complete: %d %s rows from '%s' (upload %d)",
        result.rows_imported,
        kind,
        original_filename,
        result.upload_id,
    )
    return result
