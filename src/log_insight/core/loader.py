"""Async JSON-lines record reader (plain or gzip)."""

from __future__ import annotations

import gzip
import json
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import aiofiles
from aiofiles.threadpool import wrap
from pydantic import ValidationError

from .models import LogRecord
from .schemas import RecordPayload

logger = logging.getLogger(__name__)

TEXT_ENCODING = "utf-8"
TEXT_ERRORS = "replace"


@asynccontextmanager
async def _open_text(path: Path, *, encoding: str, decode_errors: str):
    """Open a record file for async text reading (plain or gzip)."""
    if path.suffix.lower() == ".gz":
        f = gzip.open(path, mode="rt", encoding=encoding, errors=decode_errors)
        af = wrap(f)
        try:
            yield af
        finally:
            await af.close()
    else:
        async with aiofiles.open(path, encoding=encoding, errors=decode_errors) as f:
            yield f


async def _enumerate_async(iterable, start: int = 0):
    """Async enumerate helper for async iterators."""
    index = start
    async for item in iterable:
        yield index, item
        index += 1


@dataclass(slots=True)
class LoadReport:
    """Outcome of reading one record file."""

    records: list[LogRecord]
    skipped: int = 0

    @property
    def loaded(self) -> int:
        return len(self.records)


def parse_record_line(line: str) -> LogRecord | None:
    """Parse one JSON object line; None for blank or invalid lines."""
    s = line.strip()
    if not s:
        return None
    try:
        obj = json.loads(s)
    except json.JSONDecodeError:
        return None
    if not isinstance(obj, dict):
        return None
    try:
        return RecordPayload.model_validate(obj).to_record()
    except (ValidationError, ValueError):
        return None


async def iter_records(
    path: str | Path,
    *,
    encoding: str = TEXT_ENCODING,
    decode_errors: str = TEXT_ERRORS,
    on_skip: Callable[[int], None] | None = None,
) -> AsyncIterator[LogRecord]:
    """Yield records from a JSON-lines file.

    Malformed lines are skipped; ``on_skip(line_no)`` is called for each one
    that is not blank.
    """
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Record file not found: {p}")

    async with _open_text(p, encoding=encoding, decode_errors=decode_errors) as f:
        async for line_no, line in _enumerate_async(f, start=1):
            record = parse_record_line(line)
            if record is None:
                if line.strip():
                    logger.debug("Skipping malformed record at %s:%d", p.name, line_no)
                    if on_skip is not None:
                        on_skip(line_no)
                continue
            yield record


async def load_records(path: str | Path, **kwargs) -> LoadReport:
    """Collect :func:`iter_records` into a :class:`LoadReport`."""
    skipped: list[int] = []
    records = [r async for r in iter_records(path, on_skip=skipped.append, **kwargs)]
    if skipped:
        logger.info("Loaded %d record(s) from %s, skipped %d", len(records), path, len(skipped))
    return LoadReport(records=records, skipped=len(skipped))
