"""
Balance ledger: principal -> balance, with a fixed total supply.

The whole supply is minted once, at initialization, to a single principal.
After that, balances only move through `transfer`, which conserves the sum.
"""
import logging
from typing import Optional

from release_ledger.errors import (
    ArithmeticOverflow,
    EmptySupply,
    InsufficientBalance,
    InvalidParameter,
    InvalidRecipient,
    ValidationError,
)
from release_ledger.events import EventLog, TRANSFER
from release_ledger.fixed_point import U256_MAX, checked_add, checked_sub

logger = logging.getLogger(__name__)

ADDRESS_LENGTH = 20

# Reserved addresses
NULL_ADDRESS = b'\x00' * 20
CUSTODIAN_ADDRESS = b'\x00' * 19 + b'\x01'


def is_address(value) -> bool:
    return isinstance(value, bytes) and len(value) == ADDRESS_LENGTH


def _require_amount(amount):
    if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0 or amount > U256_MAX:
        raise ArithmeticOverflow(f"Amount must be an unsigned 256-bit integer, got {amount!r}")


class Ledger:
    """
    Balances of every principal plus the immutable total supply.

    Use `Ledger.initialize` to create one; there is no way to mint again.
    """

    def __init__(self, balances: dict, total_supply: int, events: Optional[EventLog] = None):
        self._balances = dict(balances)
        self._total_supply = total_supply
        self.events = events if events is not None else EventLog()

    @classmethod
    def initialize(cls, custodian: bytes, total_supply: int,
                   events: Optional[EventLog] = None) -> 'Ledger':
        """
        Mint `total_supply` to `custodian`.

        Raises:
            EmptySupply: total_supply is not a positive integer
            ArithmeticOverflow: total_supply exceeds the u256 range
            InvalidParameter: custodian is not a usable address
        """
        if not isinstance(total_supply, int) or isinstance(total_supply, bool) or total_supply <= 0:
            raise EmptySupply(f"Total supply must be positive, got {total_supply!r}")
        if total_supply > U256_MAX:
            raise ArithmeticOverflow("Total supply exceeds unsigned 256-bit range")
        if not is_address(custodian) or custodian == NULL_ADDRESS:
            raise InvalidParameter('custodian')

        ledger = cls({custodian: total_supply}, total_supply, events)
        logger.info(f"Ledger initialized: {total_supply} units minted to {custodian.hex()}")
        return ledger

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, principal: bytes) -> int:
        return self._balances.get(principal, 0)

    def holders(self) -> dict[bytes, int]:
        """Non-zero balances."""
        return {addr: bal for addr, bal in self._balances.items() if bal > 0}

    def transfer(self, sender: bytes, recipient: bytes, amount: int):
        """
        Move `amount` from `sender` to `recipient`.

        Every check runs before either balance is written, so a rejected
        transfer leaves the ledger untouched.
        """
        _require_amount(amount)

        sender_balance = self.balance_of(sender)
        if sender_balance < amount:
            raise InsufficientBalance(
                f"Insufficient balance: {sender_balance} < {amount}"
            )

        if not is_address(recipient) or recipient == NULL_ADDRESS:
            raise InvalidRecipient("Recipient must be a non-null address")

        if sender == recipient:
            new_sender_balance = sender_balance
            new_recipient_balance = sender_balance
        else:
            new_sender_balance = checked_sub(sender_balance, amount)
            new_recipient_balance = checked_add(self.balance_of(recipient), amount)

        self._balances[sender] = new_sender_balance
        self._balances[recipient] = new_recipient_balance

        self.events.emit(TRANSFER, sender=sender, recipient=recipient, amount=amount)

    def to_dict(self) -> dict:
        return {
            'total_supply': str(self._total_supply),
            'balances': {addr.hex(): str(bal) for addr, bal in self._balances.items() if bal > 0},
        }

    @classmethod
    def from_dict(cls, data: dict, events: Optional[EventLog] = None) -> 'Ledger':
        """Restore a stored ledger; the balances must add up to the supply."""
        total_supply = int(data['total_supply'])
        if total_supply <= 0:
            raise EmptySupply("Stored total supply must be positive")
        if total_supply > U256_MAX:
            raise ArithmeticOverflow("Stored total supply exceeds unsigned 256-bit range")

        balances = {}
        for addr_hex, bal in data.get('balances', {}).items():
            addr = bytes.fromhex(addr_hex)
            if not is_address(addr) or addr == NULL_ADDRESS:
                raise ValidationError(f"Stored balance for invalid address {addr_hex}")
            balance = int(bal)
            if balance < 0:
                raise ValidationError(f"Negative stored balance for {addr_hex}")
            if balance > U256_MAX:
                raise ArithmeticOverflow(f"Stored balance for {addr_hex} exceeds unsigned 256-bit range")
            balances[addr] = balance

        if sum(balances.values()) != total_supply:
            raise ValidationError("Stored balances do not add up to the total supply")
        return cls(balances, total_supply, events)

    def __repr__(self) -> str:
        return f"Ledger(total_supply={self._total_supply}, holders={len(self.holders())})"
