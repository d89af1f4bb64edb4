"""
Append-only print-attempt log used for diagnostics.

Writing the log must never affect printing: failures are logged and
dropped.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import httpx

from .models import PrintAttempt

logger = logging.getLogger('ticket.bridge.print_log')


class PrintLog(Protocol):
    async def append(self, attempt: PrintAttempt) -> None:
        ...


class MemoryPrintLog:
    """Keeps attempts in a list (tests and dry runs)."""

    def __init__(self):
        self.attempts: list[PrintAttempt] = []

    async def append(self, attempt: PrintAttempt) -> None:
        self.attempts.append(attempt)


class JsonlPrintLog:
    """One JSON object per line in a local file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    async def append(self, attempt: PrintAttempt) -> None:
        record = attempt.to_row()
        record['created_at'] = datetime.now(timezone.utc).isoformat()
        line = json.dumps(record) + '\n'
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, self._write, line)
        except OSError as e:
            logger.warning(f"Failed to log print attempt: {e}")

    def _write(self, line: str):
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(line)


class RestPrintLog:
    """Inserts rows into the backend's printer_logs table."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
    ):
        self._url = f"{base_url.rstrip('/')}/rest/v1/printer_logs"
        self._headers = {
            'apikey': api_key,
            'Authorization': f"Bearer {api_key}",
            'Prefer': 'return=minimal',
        }
        self._client = client
        self._timeout = timeout

    async def append(self, attempt: PrintAttempt) -> None:
        try:
            if self._client is not None:
                await self._insert(self._client, attempt)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    await self._insert(client, attempt)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to log print attempt: {e}")

    async def _insert(self, client: httpx.AsyncClient, attempt: PrintAttempt):
        response = await client.post(self._url, json=attempt.to_row(), headers=self._headers)
        response.raise_for_status()
