"""
In-process ERC20 token for the staked and rewarded asset.

Balances live in a plain dict keyed by lowercase address. Every balance
change goes through _move(), and every event is stamped from the shared
ChainClock. After a transfer settles, the receive hook of the credited
address runs; a hook models a recipient contract that calls back into
whoever paid it while that caller is still mid-operation.

snapshot()/restore() let a pool operation that fails halfway put every
balance, allowance and event back as they were.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict

from ..clock import ChainClock
from ..pool_exceptions import InsufficientBalanceError, ValidationError

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40

# Called as hook(token, from_address, amount) after a transfer is settled
ReceiveHook = Callable[["ERC20Token", str, int], None]


@dataclass
class TokenEvent:
    """Transfer or Approval record; mints are transfers from ZERO_ADDRESS."""

    event_type: str
    from_address: str
    to_address: str
    value: int
    timestamp: int = 0


@dataclass
class ERC20Token:
    """
    Fungible token with integer base-unit balances.

    The pool does not rely on the boolean a transfer returns; it measures
    what arrived by differencing balance_of() around each external call.
    """

    name: str
    symbol: str
    decimals: int = 18
    total_supply: int = 0
    address: str = ""
    owner: str = ""
    clock: ChainClock = field(default_factory=ChainClock, repr=False)

    balances: dict[str, int] = field(default_factory=dict)
    allowances: dict[str, dict[str, int]] = field(default_factory=dict)
    events: list[TokenEvent] = field(default_factory=list)
    receive_hooks: dict[str, ReceiveHook] = field(default_factory=dict)

    UINT256_MAX: int = 2**256 - 1

    def __post_init__(self) -> None:
        if not self.address:
            digest = hashlib.sha3_256(f"token:{self.symbol}:{id(self)}".encode()).digest()
            self.address = f"0x{digest[-20:].hex()}"
        self.address = self.address.lower()
        self.owner = self.owner.lower()

    # ==================== Views ====================

    def balance_of(self, account: str) -> int:
        return self.balances.get(account.lower(), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get(owner.lower(), {}).get(spender.lower(), 0)

    # ==================== Mutators ====================

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """Move amount from sender (msg.sender) to recipient."""
        source, dest = sender.lower(), recipient.lower()
        self._move(source, dest, amount)
        self._notify(source, dest, amount)
        return True

    def transfer_from(self, spender: str, from_addr: str, to_addr: str, amount: int) -> bool:
        """
        Move amount out of from_addr on behalf of spender.

        Raises:
            InsufficientBalanceError: If the allowance or the balance is short
        """
        owner = from_addr.lower()
        spender = spender.lower()
        granted = self.allowance(owner, spender)
        if granted < amount:
            raise InsufficientBalanceError(
                f"ERC20: insufficient allowance ({granted} < {amount})",
                details={"owner": owner, "spender": spender, "allowance": granted},
            )
        dest = to_addr.lower()
        self._move(owner, dest, amount)
        # An unlimited approval is never decremented
        if granted != self.UINT256_MAX:
            self.allowances[owner][spender] = granted - amount
        self._notify(owner, dest, amount)
        return True

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        owner = owner.lower()
        spender = spender.lower()
        self._check_address(spender, "spender")
        self._check_amount(amount)
        self.allowances.setdefault(owner, {})[spender] = amount
        self._log("Approval", owner, spender, amount)
        return True

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """Create amount new tokens for to; only the owner may mint."""
        if minter.lower() != self.owner:
            raise ValidationError("ERC20: caller is not owner", details={"caller": minter.lower()})
        self._move(ZERO_ADDRESS, to.lower(), amount)
        logger.info(
            "ERC20 mint",
            extra={
                "event": "erc20.mint",
                "token": self.symbol,
                "to": to.lower()[:10],
                "amount": amount,
                "new_supply": self.total_supply,
            },
        )
        return True

    # ==================== Hooks ====================

    def register_receive_hook(self, address: str, hook: ReceiveHook) -> None:
        """Invoke hook every time tokens are transferred to address."""
        self.receive_hooks[address.lower()] = hook

    def remove_receive_hook(self, address: str) -> None:
        self.receive_hooks.pop(address.lower(), None)

    # ==================== Internals ====================

    def _move(self, source: str, dest: str, amount: int) -> None:
        """Debit source (ZERO_ADDRESS mints) and credit dest."""
        self._check_address(dest, "recipient")
        self._check_amount(amount)

        if source == ZERO_ADDRESS:
            self.total_supply += amount
        else:
            held = self.balances.get(source, 0)
            if held < amount:
                raise InsufficientBalanceError(
                    f"ERC20: transfer amount exceeds balance ({amount} > {held})",
                    details={"sender": source, "amount": amount, "balance": held},
                )
            self.balances[source] = held - amount
        self.balances[dest] = self.balances.get(dest, 0) + amount
        self._log("Transfer", source, dest, amount)

        logger.debug(
            "ERC20 transfer",
            extra={
                "event": "erc20.transfer",
                "token": self.symbol,
                "from": source[:10],
                "to": dest[:10],
                "amount": amount,
            },
        )

    def _notify(self, source: str, dest: str, amount: int) -> None:
        hook = self.receive_hooks.get(dest)
        if hook is not None:
            hook(self, source, amount)

    def _log(self, event_type: str, source: str, dest: str, value: int) -> None:
        self.events.append(
            TokenEvent(
                event_type=event_type,
                from_address=source,
                to_address=dest,
                value=value,
                timestamp=self.clock.now(),
            )
        )

    def _check_address(self, address: str, role: str) -> None:
        if not address or address == ZERO_ADDRESS:
            raise ValidationError(f"ERC20: {role} is zero address")

    def _check_amount(self, amount: int) -> None:
        if amount < 0:
            raise ValidationError("ERC20: amount cannot be negative")
        if amount > self.UINT256_MAX:
            raise ValidationError("ERC20: amount exceeds uint256")

    # ==================== Snapshots ====================

    def snapshot(self) -> Dict[str, Any]:
        return {
            "total_supply": self.total_supply,
            "balances": dict(self.balances),
            "allowances": {owner: dict(granted) for owner, granted in self.allowances.items()},
            "event_count": len(self.events),
        }

    def restore(self, snapshot: Dict[str, Any]) -> None:
        self.total_supply = snapshot["total_supply"]
        self.balances = dict(snapshot["balances"])
        self.allowances = {owner: dict(granted) for owner, granted in snapshot["allowances"].items()}
        del self.events[snapshot["event_count"]:]
