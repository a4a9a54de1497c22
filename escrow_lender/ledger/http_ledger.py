"""Deal ledger backed by the application's HTTP deals API."""
import asyncio
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ..config import LedgerConfig
from ..errors import LedgerReadError, PersistError
from ..models import DealRecord

logger = logging.getLogger(__name__)


class HttpDealLedger:
    """Append-only deal store: ``POST`` to add, ``GET ?userId=`` to list."""

    def __init__(self, config: LedgerConfig) -> None:
        self.url = f"{config.base_url}{config.deals_path}"
        self.timeout = config.timeout

    def _session(self) -> aiohttp.ClientSession:
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)
        return aiohttp.ClientSession(
            connector=connector, timeout=aiohttp.ClientTimeout(total=self.timeout)
        )

    @staticmethod
    async def _saved_body(response: aiohttp.ClientResponse) -> Any:
        """Body of a 2xx answer; the row is stored even if it can't be parsed."""
        if response.status == 204:
            return None
        try:
            return await response.json()
        except (aiohttp.ContentTypeError, ValueError) as e:
            logger.debug("Unparseable deal store body on HTTP %s: %s", response.status, e)
            return None

    async def append(self, record: DealRecord) -> str:
        """Persist ``record``; returns the id assigned by the store."""
        try:
            async with self._session() as session:
                async with session.post(self.url, json=record.to_payload()) as response:
                    if not 200 <= response.status < 300:
                        raise PersistError(
                            f"Deal store answered HTTP {response.status}"
                        )
                    body = await self._saved_body(response)
        except PersistError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise PersistError(f"Could not save deal: {e}") from e

        record_id = body.get("id") if isinstance(body, dict) else None
        if record_id is None:
            # the write succeeded; some stores just don't echo the row back
            logger.debug("Deal store returned no id for user %s", record.user_id)
            record_id = ""

        logger.info(
            "Saved %s deal %s for user %s (%d wei)",
            record.deal_type.value,
            record_id,
            record.user_id,
            record.amount,
        )
        return str(record_id)

    async def list_by_user(self, user_id: int) -> list[DealRecord]:
        """All deals for ``user_id``, most recent first."""
        try:
            async with self._session() as session:
                async with session.get(self.url, params={"userId": str(user_id)}) as response:
                    if response.status != 200:
                        raise LedgerReadError(
                            f"Deal store answered HTTP {response.status}"
                        )
                    rows = await response.json()
        except LedgerReadError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise LedgerReadError(f"Could not list deals: {e}") from e

        if not isinstance(rows, list):
            raise LedgerReadError("Deal store returned a non-list payload")

        try:
            records = [DealRecord.from_payload(row) for row in rows]
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerReadError(f"Malformed deal row: {e}") from e

        # the store returns insertion order
        records.reverse()
        return records
