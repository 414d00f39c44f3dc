"""Async Solana RPC wrapper with endpoint fallback and read retries."""

from __future__ import annotations

import asyncio
import struct
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.types import MemcmpOpts, TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from solders.transaction_status import TransactionConfirmationStatus
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config.settings import RPCConfig, get_app_config
from ..monitoring.logger import get_logger
from ..monitoring.metrics import METRICS
from .errors import NetworkOrRpcError, classify_program_error

T = TypeVar("T")

_TRANSIENT = (SolanaRpcException, httpx.HTTPError, asyncio.TimeoutError, OSError)
_CONFIRMED = (TransactionConfirmationStatus.Confirmed, TransactionConfirmationStatus.Finalized)

# SPL token account: mint(32) owner(32) amount(u64)
_TOKEN_AMOUNT_OFFSET = 64

Memcmp = Tuple[int, Pubkey]
KeyedAccount = Tuple[Pubkey, bytes]


class SolanaClient:
    """Thin async facade over one or more ``AsyncClient`` endpoints.

    Reads are retried with exponential backoff and fail over to the next
    endpoint on transport errors. Sends try each endpoint once and leave
    retry policy to the caller.
    """

    def __init__(self, config: Optional[RPCConfig] = None) -> None:
        self._config = config or get_app_config().rpc
        self._endpoints = [str(self._config.primary_url), *map(str, self._config.fallback_urls)]
        self._commitment = Commitment(self._config.commitment)
        self._clients = [
            AsyncClient(endpoint, commitment=self._commitment, timeout=self._config.request_timeout)
            for endpoint in self._endpoints
        ]
        self._logger = get_logger(__name__)

    async def close(self) -> None:
        for client in self._clients:
            await client.close()

    async def _on_any_endpoint(self, name: str, call: Callable[[AsyncClient], Awaitable[T]]) -> T:
        last_exc: Optional[BaseException] = None
        for endpoint, client in zip(self._endpoints, self._clients):
            try:
                return await call(client)
            except _TRANSIENT as exc:
                last_exc = exc
                METRICS.increment("rpc.endpoint_error", method=name)
                self._logger.warning("RPC %s failed on %s: %s", name, endpoint, exc)
        if last_exc is None:
            raise NetworkOrRpcError(f"No RPC endpoints configured for {name}")
        raise last_exc

    async def _read(self, name: str, call: Callable[[AsyncClient], Awaitable[T]]) -> T:
        METRICS.increment("rpc.read", method=name)
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._config.read_retry_attempts),
            wait=wait_exponential(multiplier=0.2, max=2.0),
            retry=retry_if_exception_type(_TRANSIENT),
            reraise=True,
        ):
            with attempt:
                return await self._on_any_endpoint(name, call)
        raise NetworkOrRpcError(f"RPC {name} did not run")  # pragma: no cover

    async def get_program_accounts(
        self,
        program_id: Pubkey,
        memcmp: Sequence[Memcmp] = (),
        *,
        data_size: Optional[int] = None,
    ) -> List[KeyedAccount]:
        filters: List = [MemcmpOpts(offset=offset, bytes=str(value)) for offset, value in memcmp]
        if data_size is not None:
            filters.insert(0, data_size)
        response = await self._read(
            "get_program_accounts",
            lambda client: client.get_program_accounts(program_id, encoding="base64", filters=filters),
        )
        return [(keyed.pubkey, bytes(keyed.account.data)) for keyed in response.value]

    async def get_account_data(self, address: Pubkey) -> Optional[bytes]:
        response = await self._read("get_account_info", lambda client: client.get_account_info(address))
        if response.value is None:
            return None
        return bytes(response.value.data)

    async def get_token_account_balance(self, address: Pubkey) -> int:
        response = await self._read(
            "get_token_account_balance", lambda client: client.get_token_account_balance(address)
        )
        return int(response.value.amount)

    async def get_token_balance(self, token_account: Pubkey) -> int:
        """Raw balance of ``token_account``; a missing account holds zero."""

        data = await self.get_account_data(token_account)
        if data is None or len(data) < _TOKEN_AMOUNT_OFFSET + 8:
            return 0
        return struct.unpack_from("<Q", data, _TOKEN_AMOUNT_OFFSET)[0]

    async def get_balance(self, owner: Pubkey) -> int:
        response = await self._read("get_balance", lambda client: client.get_balance(owner))
        return int(response.value)

    async def get_latest_blockhash(self) -> Tuple[Hash, int]:
        response = await self._read("get_latest_blockhash", lambda client: client.get_latest_blockhash())
        return response.value.blockhash, response.value.last_valid_block_height

    async def get_block_height(self) -> int:
        response = await self._read("get_block_height", lambda client: client.get_block_height())
        return int(response.value)

    async def send_transaction(self, transaction: VersionedTransaction) -> str:
        opts = TxOpts(
            skip_preflight=self._config.skip_preflight,
            preflight_commitment=self._commitment,
        )
        response = await self._on_any_endpoint(
            "send_transaction", lambda client: client.send_transaction(transaction, opts=opts)
        )
        METRICS.increment("rpc.send_transaction")
        return str(response.value)

    async def confirm_transaction(self, signature: str, last_valid_block_height: int) -> None:
        """Poll until ``signature`` reaches confirmed commitment.

        Raises ``ProgramError`` when the transaction landed with an error and
        ``NetworkOrRpcError`` when it expired or the wait timed out.
        """

        sig = Signature.from_string(signature)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.confirm_timeout_seconds
        while loop.time() < deadline:
            response = await self._read(
                "get_signature_statuses", lambda client: client.get_signature_statuses([sig])
            )
            status = response.value[0]
            if status is not None:
                if status.err is not None:
                    raise classify_program_error(status.err)
                if status.confirmation_status in _CONFIRMED:
                    return
            elif await self.get_block_height() > last_valid_block_height:
                raise NetworkOrRpcError(f"Blockhash expired before {signature} landed")
            await asyncio.sleep(self._config.confirm_poll_seconds)
        raise NetworkOrRpcError(
            f"Confirmation of {signature} timed out after {self._config.confirm_timeout_seconds}s"
        )


__all__ = ["KeyedAccount", "Memcmp", "SolanaClient"]
