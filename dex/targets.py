"""
Execution targets: where a profitable opportunity gets settled.

A target performs the whole multi-hop round trip atomically in a single
submission (flash loan: borrow, swap through the intermediate token, repay).
"""

import asyncio
import itertools
from functools import partial
from typing import Dict, Optional, Protocol, Tuple, runtime_checkable

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.exceptions import TimeExhausted
from web3.logs import DISCARD

from flash_arbitrage.constants import ARBITRAGE_EVENT_NAME, DEFAULT_CONTRACT_VENUE_ORDER
from flash_arbitrage.exceptions import ExecutionTargetError, SettlementTimeout
from flash_arbitrage.utils import get_logger

from .abi import ARBITRAGE_FLASH_LOAN_ABI
from .types import SettlementEvent, SettlementOutcome, Token

logger = get_logger(__name__)


@runtime_checkable
class ExecutionTarget(Protocol):
    """
    Settlement backend for opportunities.

    ``max_hops`` is the longest path the target can settle atomically
    (None for unbounded). ``venue_order`` is the venue sequence the target
    swaps through when settling (None when it follows the path as quoted).
    estimate_cost and submit raise ExecutionTargetError; await_settlement
    raises SettlementTimeout when the outcome is not known before the timeout.
    """

    max_hops: Optional[int]
    venue_order: Optional[Tuple[str, ...]]

    async def estimate_cost(
        self, borrow_token: Token, amount: int, intermediate_token: Token
    ) -> int:
        ...

    async def submit(
        self, borrow_token: Token, amount: int, intermediate_token: Token, budget: int
    ) -> str:
        ...

    async def await_settlement(self, handle: str, timeout: float) -> SettlementOutcome:
        ...


class FlashLoanContractTarget:
    """
    Settles through an on-chain flash-loan contract exposing
    ``executeArbitrage(tokenBorrow, amount, intermediateToken)``.

    The contract does one borrow and two swaps, so only 2-hop paths can be
    settled, and only in the contract's fixed venue order. Nonce lookup and
    broadcast are serialized per signing account.
    """

    max_hops = 2

    def __init__(
        self,
        web3: Web3,
        contract_address: str,
        account: LocalAccount,
        gas_price_wei: int,
        venue_order: Tuple[str, ...] = DEFAULT_CONTRACT_VENUE_ORDER,
    ):
        self.web3 = web3
        self.account = account
        self.gas_price_wei = gas_price_wei
        self.venue_order = tuple(venue_order)
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.contract = web3.eth.contract(
            address=self.contract_address, abi=ARBITRAGE_FLASH_LOAN_ABI
        )
        self._send_lock = asyncio.Lock()

    def _arbitrage_call(self, borrow_token: Token, amount: int, intermediate_token: Token):
        return self.contract.functions.executeArbitrage(
            Web3.to_checksum_address(borrow_token.address),
            amount,
            Web3.to_checksum_address(intermediate_token.address),
        )

    async def estimate_cost(
        self, borrow_token: Token, amount: int, intermediate_token: Token
    ) -> int:
        call = self._arbitrage_call(borrow_token, amount, intermediate_token)
        loop = asyncio.get_running_loop()
        try:
            gas = await loop.run_in_executor(
                None, partial(call.estimate_gas, {"from": self.account.address})
            )
        except Exception as e:
            raise ExecutionTargetError(
                f"Gas estimation failed: {e}", operation="estimate_cost"
            ) from e
        return int(gas)

    def _build_sign_send(self, call, budget: int) -> str:
        nonce = self.web3.eth.get_transaction_count(self.account.address, "pending")
        tx = call.build_transaction(
            {
                "from": self.account.address,
                "gas": budget,
                "gasPrice": self.gas_price_wei,
                "nonce": nonce,
                "chainId": self.web3.eth.chain_id,
            }
        )
        signed = self.account.sign_transaction(tx)
        tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        return self.web3.to_hex(tx_hash)

    async def submit(
        self, borrow_token: Token, amount: int, intermediate_token: Token, budget: int
    ) -> str:
        call = self._arbitrage_call(borrow_token, amount, intermediate_token)
        loop = asyncio.get_running_loop()
        async with self._send_lock:
            try:
                tx_hash = await loop.run_in_executor(
                    None, self._build_sign_send, call, budget
                )
            except Exception as e:
                raise ExecutionTargetError(
                    f"Transaction submission failed: {e}", operation="submit"
                ) from e
        logger.info(f"Submitted executeArbitrage tx {tx_hash} (gas limit {budget})")
        return tx_hash

    def _decode_events(self, receipt) -> Tuple[SettlementEvent, ...]:
        logs = self.contract.events.Arbitrage().process_receipt(receipt, errors=DISCARD)
        return tuple(
            SettlementEvent(
                name=log["event"],
                token=log["args"]["tokenBorrow"],
                amount=int(log["args"]["amount"]),
                profit=int(log["args"]["profit"]),
            )
            for log in logs
        )

    async def await_settlement(self, handle: str, timeout: float) -> SettlementOutcome:
        loop = asyncio.get_running_loop()
        try:
            receipt = await loop.run_in_executor(
                None,
                partial(self.web3.eth.wait_for_transaction_receipt, handle, timeout=timeout),
            )
        except TimeExhausted as e:
            raise SettlementTimeout(
                f"Transaction {handle} not mined after {timeout}s",
                handle=handle,
                timeout=timeout,
            ) from e

        settled = receipt["status"] == 1
        return SettlementOutcome(
            settled=settled,
            events=self._decode_events(receipt) if settled else (),
            block_number=receipt.get("blockNumber"),
            cost_used=receipt.get("gasUsed"),
        )


class PaperExecutionTarget:
    """
    Dry-run target: nothing leaves the process.

    Returns a fixed cost estimate, hands out synthetic handles and settles
    immediately with a matching Arbitrage event. A handle is forgotten once
    it has settled.
    """

    def __init__(
        self,
        gas_estimate: int = 250_000,
        max_hops: Optional[int] = None,
        venue_order: Optional[Tuple[str, ...]] = None,
    ):
        self.gas_estimate = gas_estimate
        self.max_hops = max_hops
        self.venue_order = tuple(venue_order) if venue_order is not None else None
        self.submissions: Dict[str, Tuple[Token, int, Token, int]] = {}
        self.submitted_count = 0
        self._counter = itertools.count(1)

    async def estimate_cost(
        self, borrow_token: Token, amount: int, intermediate_token: Token
    ) -> int:
        return self.gas_estimate

    async def submit(
        self, borrow_token: Token, amount: int, intermediate_token: Token, budget: int
    ) -> str:
        handle = f"0xDRYRUN-{next(self._counter)}"
        self.submissions[handle] = (borrow_token, amount, intermediate_token, budget)
        self.submitted_count += 1
        logger.info(
            f"[DRY RUN] Would execute: borrow {amount} {borrow_token.symbol} via "
            f"{intermediate_token.symbol} (budget {budget}) -> {handle}"
        )
        return handle

    async def await_settlement(self, handle: str, timeout: float) -> SettlementOutcome:
        submission = self.submissions.pop(handle, None)
        if submission is None:
            raise ExecutionTargetError(f"Unknown handle {handle}", operation="await_settlement")
        borrow_token, amount, _, budget = submission
        event = SettlementEvent(
            name=ARBITRAGE_EVENT_NAME, token=borrow_token.address, amount=amount
        )
        return SettlementOutcome(settled=True, events=(event,), cost_used=budget)
