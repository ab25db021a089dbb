from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
import re
from typing import Any, Awaitable, Callable, Iterable

from relay_console.errors import DispatchError, ImportFormatError, ValidationError
from relay_console.models import BatchImportResult

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"1//[A-Za-z0-9_\-]+")
TOKEN_FIELD = "refresh_token"

ProgressCallback = Callable[[int, int], None]


def is_token(value: Any) -> bool:
    return isinstance(value, str) and TOKEN_PATTERN.fullmatch(value) is not None


def _tokens_from_items(items: Iterable[Any]) -> list[str]:
    tokens: list[str] = []
    for item in items:
        value = item.get(TOKEN_FIELD) if isinstance(item, dict) else item
        if is_token(value):
            tokens.append(value)
    return tokens


def _dedupe(tokens: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(tokens))


def extract_candidates(raw: str) -> list[str]:
    """Pull refresh tokens out of pasted text.

    A JSON array is read first (objects contribute their ``refresh_token``
    field, strings count as themselves). When that yields nothing the raw
    text is scanned for anything shaped like a token.
    """
    text = raw.strip()
    tokens: list[str] = []

    if text.startswith("[") and text.endswith("]"):
        try:
            parsed = json.loads(text)
        except ValueError:
            logger.debug("Pasted text is not a JSON array, scanning for tokens instead")
        else:
            if isinstance(parsed, list):
                tokens = _tokens_from_items(parsed)

    if not tokens:
        tokens = TOKEN_PATTERN.findall(text)

    return _dedupe(tokens)


def parse_structured_file(content: str | bytes | list[Any]) -> list[str]:
    if isinstance(content, (str, bytes)):
        try:
            data = json.loads(content)
        except ValueError as exc:
            raise ImportFormatError("The file is not valid JSON") from exc
    else:
        data = content

    if not isinstance(data, list):
        raise ImportFormatError("The file must contain a JSON array of accounts")

    tokens = _tokens_from_items(data)
    if not tokens:
        raise ImportFormatError("No refresh tokens were found in the file")
    return _dedupe(tokens)


class BatchImporter:
    """Feeds refresh tokens one at a time into the single-account add operation."""

    def __init__(
        self,
        add_credential: Callable[[str], Awaitable[Any]],
        delay_seconds: float = 0.1,
        refresh: Callable[[], Awaitable[Any]] | None = None,
    ):
        self._add_credential = add_credential
        self._delay_seconds = delay_seconds
        self._refresh = refresh

    async def import_text(
        self,
        raw: str,
        on_progress: ProgressCallback | None = None,
    ) -> BatchImportResult:
        if not raw.strip():
            raise ValidationError("Paste at least one refresh token")

        candidates = extract_candidates(raw)
        if not candidates:
            raise ValidationError("No refresh token was found in the pasted text")

        return await self._run(candidates, on_progress)

    async def import_file(
        self,
        content: str | bytes | list[Any],
        on_progress: ProgressCallback | None = None,
    ) -> BatchImportResult:
        candidates = parse_structured_file(content)
        result = await self._run(candidates, on_progress)
        if result.succeeded:
            await self._refresh_best_effort()
        return result

    async def import_path(
        self,
        path: str | Path,
        on_progress: ProgressCallback | None = None,
    ) -> BatchImportResult:
        try:
            content = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ImportFormatError(f"Could not read {path}: {exc}") from exc
        return await self.import_file(content, on_progress)

    async def _run(
        self,
        candidates: list[str],
        on_progress: ProgressCallback | None,
    ) -> BatchImportResult:
        result = BatchImportResult()
        total = len(candidates)

        for index, token in enumerate(candidates, start=1):
            if on_progress is not None:
                on_progress(index, total)
            try:
                await self._add_credential(token)
            except Exception as exc:
                logger.warning("Failed to add token %d/%d: %s", index, total, exc)
                result.record(False)
            else:
                result.record(True)

            if index < total and self._delay_seconds:
                await asyncio.sleep(self._delay_seconds)

        logger.info("Batch import finished: %s", result.summary)
        return result

    async def _refresh_best_effort(self) -> None:
        if self._refresh is None:
            return
        try:
            await self._refresh()
        except DispatchError as exc:
            logger.warning("Refresh after import failed: %s", exc)
