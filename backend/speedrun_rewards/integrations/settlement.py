"""
Settlement gateways: hand committed batches to whatever pays them out.

The ledger commits first and settles second. A gateway failure never rolls
a batch back; the grants stay PENDING (or are marked FAILED) and are
reconciled outside the ledger.
"""

import asyncio
from typing import Any, Dict, Optional, Protocol, Tuple

import aiohttp
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..core.config import SettlementConfig
from ..core.exceptions import SettlementError
from ..core.logging_config import get_batch_logger, get_logger
from ..ledger.types import BatchResult

logger = get_logger(__name__)


class SettlementGateway(Protocol):
    """Anything that can take a committed batch and return an external reference."""

    requires_confirmation: bool

    async def submit_allocation(self, batch: BatchResult) -> str:
        ...

    async def close(self) -> None:
        ...


class NullSettlementGateway:
    """No external payout: batches are settled by being committed."""

    requires_confirmation = False

    async def submit_allocation(self, batch: BatchResult) -> str:
        return batch.batch_id

    async def close(self) -> None:
        return None


class _TransientRelayError(Exception):
    """Relay answered with a status worth retrying."""

    def __init__(self, status: int, body: Any):
        super().__init__(f"relay returned {status}")
        self.status = status
        self.body = body


def batch_payload(batch: BatchResult) -> Dict[str, Any]:
    return {
        "batch_id": batch.batch_id,
        "sequence": batch.sequence,
        "total_amount": str(batch.total_amount),
        "grants": [
            {
                "reward_id": g.reward_id,
                "recipient": g.recipient,
                "amount": str(g.amount),
                "category": g.category.value,
                "week": g.week,
                "proof": g.proof,
            }
            for g in batch.grants
        ],
    }


class HttpSettlementGateway:
    """
    Posts committed batches to a payout relay over HTTP.

    Connection errors, timeouts and 5xx answers are retried with
    exponential backoff; any other non-2xx answer fails immediately.
    The relay answers ``{"reference": "<tx hash or id>"}``.
    """

    requires_confirmation = True

    def __init__(self, config: SettlementConfig):
        if not config.relay_url:
            raise ValueError("HttpSettlementGateway needs a relay_url")
        self.config = config
        self.url = config.relay_url.rstrip("/") + "/allocations"
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"Content-Type": "application/json"}
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            )
        return self._session

    async def _post(self, payload: Dict[str, Any]) -> Tuple[int, Any]:
        session = await self._get_session()
        async with session.post(self.url, json=payload) as response:
            try:
                body = await response.json(content_type=None)
            except ValueError:
                body = await response.text()
            return response.status, body

    async def _send(self, payload: Dict[str, Any]) -> str:
        status, body = await self._post(payload)
        if status >= 500:
            raise _TransientRelayError(status, body)
        if status >= 300:
            raise SettlementError(
                f"Relay rejected batch: HTTP {status}",
                batch_id=payload["batch_id"],
                status_code=status,
                details={"response": body},
            )
        reference = body.get("reference") if isinstance(body, dict) else None
        if not reference:
            raise SettlementError(
                "Relay response carried no reference",
                batch_id=payload["batch_id"],
                details={"response": body},
            )
        return str(reference)

    async def submit_allocation(self, batch: BatchResult) -> str:
        batch_logger = get_batch_logger(logger, batch.batch_id)
        payload = batch_payload(batch)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=wait_exponential(multiplier=1, min=self.config.backoff_min, max=self.config.backoff_max),
            retry=retry_if_exception_type((aiohttp.ClientError, asyncio.TimeoutError, _TransientRelayError)),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        batch_logger.info(f"Retrying settlement, attempt {attempt.retry_state.attempt_number}")
                    reference = await self._send(payload)
        except RetryError as e:
            last = e.last_attempt.exception()
            batch_logger.error(f"Settlement failed after {self.config.max_attempts} attempts: {last}")
            raise SettlementError(
                f"Relay unavailable after {self.config.max_attempts} attempts: {last}",
                batch_id=batch.batch_id,
                status_code=getattr(last, "status", None),
            ) from last

        batch_logger.info(f"Batch settled externally as {reference}")
        return reference

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()


def build_gateway(config: SettlementConfig) -> SettlementGateway:
    if config.relay_url:
        return HttpSettlementGateway(config)
    return NullSettlementGateway()
