"""
In-Memory Chain Environment

Stands in for the collaborators a deployed contract gets from its chain:
the transaction sender, the block height used as timestamp source, the
reserved burn address, and the token-transfer primitive that moves the
verification fee. Simulates all of it without network calls.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterator, List, Optional

from agriverify.config import BURN_ADDRESS
from agriverify.observability import Layer, get_logger

logger = get_logger("chain", Layer.CHAIN)


class ChainError(Exception):
    """Invalid use of the chain environment."""
    pass


@dataclass(frozen=True)
class FeeTransfer:
    """A value transfer performed on behalf of a contract call."""
    amount: int
    sender: str
    recipient: Optional[str]
    block_height: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ChainEnvironment:
    """
    Mock chain for driving a registry.

    The caller and block height are read by the registry on every call.
    Block height only moves forward.
    """

    def __init__(
        self,
        caller: Optional[str] = None,
        block_height: Optional[int] = None,
        burn_address: Optional[str] = None,
    ):
        if caller is None or block_height is None or burn_address is None:
            from agriverify.config import get_config
            cfg = get_config()
            caller = caller if caller is not None else cfg.chain.default_caller.get()
            if block_height is None:
                block_height = cfg.chain.genesis_block_height.get()
            if burn_address is None:
                burn_address = cfg.registry.burn_address.get()
        if block_height < 0:
            raise ChainError(f"block height cannot be negative: {block_height}")

        self._genesis_caller = caller
        self._genesis_height = block_height
        self.burn_address = burn_address or BURN_ADDRESS
        self.caller = caller
        self._block_height = block_height
        self._transfers: List[FeeTransfer] = []

    @property
    def block_height(self) -> int:
        return self._block_height

    def set_block_height(self, height: int) -> None:
        """Move to ``height``; moving backwards raises ChainError."""
        if height < self._block_height:
            raise ChainError(
                f"block height must not decrease: {self._block_height} -> {height}"
            )
        self._block_height = height

    def advance(self, blocks: int = 1) -> int:
        """Mine ``blocks`` empty blocks and return the new height."""
        if blocks < 0:
            raise ChainError(f"cannot advance by a negative block count: {blocks}")
        self._block_height += blocks
        return self._block_height

    @contextmanager
    def as_caller(self, principal: str) -> Iterator["ChainEnvironment"]:
        """Send the enclosed calls as ``principal``."""
        previous = self.caller
        self.caller = principal
        try:
            yield self
        finally:
            self.caller = previous

    def is_burn_address(self, principal: str) -> bool:
        return principal == self.burn_address

    def transfer(self, amount: int, sender: str, recipient: Optional[str]) -> FeeTransfer:
        """Record a value transfer from ``sender`` to ``recipient``."""
        record = FeeTransfer(
            amount=amount,
            sender=sender,
            recipient=recipient,
            block_height=self._block_height,
        )
        self._transfers.append(record)
        logger.debug(
            "Fee transferred",
            operation="transfer",
            amount=amount,
            sender=sender,
            recipient=recipient,
        )
        return record

    @property
    def transfers(self) -> List[FeeTransfer]:
        """Transfers in the order they happened."""
        return list(self._transfers)

    def total_transferred(self, recipient: Optional[str] = None) -> int:
        return sum(
            t.amount for t in self._transfers
            if recipient is None or t.recipient == recipient
        )

    def reset(self) -> None:
        """Return to the genesis caller and height and clear transfers."""
        self.caller = self._genesis_caller
        self._block_height = self._genesis_height
        self._transfers.clear()
