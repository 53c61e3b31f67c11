"""
One-time release of the custodial balance.

State machine:

    PENDING --release()--> RELEASED

RELEASED is terminal. The state is flipped before the ledger transfer is
attempted, so any nested call made while the transfer is in flight (for
example by an event subscriber) already sees RELEASED and is rejected.
If the transfer itself is rejected the flip is undone.
"""
import logging
import threading
from enum import Enum
from typing import Optional

from release_ledger.errors import (
    AlreadyReleased,
    AmountMismatch,
    InvalidParameter,
    InvalidRecipient,
    Unauthorized,
)
from release_ledger.events import RELEASED
from release_ledger.ledger import Ledger, NULL_ADDRESS, CUSTODIAN_ADDRESS, is_address

logger = logging.getLogger(__name__)


class ReleaseState(str, Enum):
    PENDING = "PENDING"
    RELEASED = "RELEASED"


class ReleaseGate:
    def __init__(self, ledger: Ledger, controller: bytes,
                 custodian: bytes = CUSTODIAN_ADDRESS,
                 state: ReleaseState = ReleaseState.PENDING,
                 lock: Optional[threading.RLock] = None):
        """
        Args:
            ledger: ledger holding the custodial balance
            controller: the only principal allowed to release
            custodian: principal the balance is released from
            state: restored state, PENDING for a fresh deployment
            lock: writer lock shared with the enclosing token
        """
        if not is_address(controller) or controller in (NULL_ADDRESS, custodian):
            raise InvalidParameter('controller', "Controller must be a non-null, non-custodial address")

        self.ledger = ledger
        self.controller = controller
        self.custodian = custodian
        self._state = ReleaseState(state)
        self._lock = lock or threading.RLock()

    @property
    def state(self) -> ReleaseState:
        return self._state

    @property
    def released(self) -> bool:
        return self._state is ReleaseState.RELEASED

    def release(self, caller: bytes, to: bytes, amount: int):
        """
        Move the entire custodial balance to `to`.

        Raises:
            Unauthorized: caller is not the controller
            AlreadyReleased: the release already happened
            InvalidRecipient: `to` is the null principal, the custodian
                or not an address
            AmountMismatch: amount differs from the custodial balance
        """
        with self._lock:
            if caller != self.controller:
                logger.warning(f"Release rejected: unauthorized caller {_fmt(caller)}")
                raise Unauthorized("Only the controller can release")

            if self._state is ReleaseState.RELEASED:
                logger.warning("Release rejected: already released")
                raise AlreadyReleased("Custodial balance was already released")

            if not is_address(to) or to in (NULL_ADDRESS, self.custodian):
                logger.warning("Release rejected: invalid recipient")
                raise InvalidRecipient("Release recipient must be a non-null address")

            custodial = self.ledger.balance_of(self.custodian)
            if amount != custodial:
                logger.warning(f"Release rejected: amount {amount} != custodial balance {custodial}")
                raise AmountMismatch(
                    f"Release amount must equal the custodial balance {custodial}, got {amount}"
                )

            # Latch first, then move funds
            self._state = ReleaseState.RELEASED
            try:
                self.ledger.transfer(self.custodian, to, amount)
            except Exception:
                self._state = ReleaseState.PENDING
                raise

            logger.info(f"Released {amount} units to {to.hex()}")
            self.ledger.events.emit(RELEASED, recipient=to, amount=amount)

    def to_dict(self) -> dict:
        return {
            'state': self._state.value,
            'controller': self.controller.hex(),
            'custodian': self.custodian.hex(),
        }


def _fmt(addr) -> str:
    return addr.hex() if isinstance(addr, bytes) else repr(addr)
