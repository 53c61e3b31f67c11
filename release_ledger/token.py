"""
ReleaseToken: the ledger, the release gate and the curve parameters of a
single deployment.

The full supply is minted to CUSTODIAN_ADDRESS at construction. The
custodian never signs anything, so the only way units leave custody is
`release`, which the controller may call once, for the whole balance.
"""
import logging
import threading
import time
from decimal import Decimal

from release_ledger.core import (
    Transaction, RELEASE, TRANSFER, APPROVE, TRANSFER_FROM, parse_amount,
)
from release_ledger.crypto import public_key_to_address
from release_ledger.curve import CurveParameters, MAX_BOUND
from release_ledger.errors import (
    ArithmeticOverflow,
    InsufficientAllowance,
    InvalidParameter,
    InvalidRecipient,
    InvalidTransaction,
    Unauthorized,
    ValidationError,
)
from release_ledger.events import EventLog, APPROVAL
from release_ledger.fixed_point import EULER, U256_MAX
from release_ledger.ledger import (
    Ledger, NULL_ADDRESS, CUSTODIAN_ADDRESS, is_address,
)
from release_ledger.release_gate import ReleaseGate, ReleaseState

logger = logging.getLogger(__name__)

# Display precision: 6 decimals
DECIMALS = 6
TOKEN_UNIT = 10**DECIMALS

RESERVED_ADDRESSES = (NULL_ADDRESS, CUSTODIAN_ADDRESS)


def _require_holder(principal: bytes, role: str):
    """Reserved principals never act on their own balance."""
    if not is_address(principal) or principal in RESERVED_ADDRESSES:
        raise Unauthorized(f"{role} must be a regular address")


def _require_counterparty(principal: bytes, role: str):
    if not is_address(principal) or principal in RESERVED_ADDRESSES:
        raise InvalidRecipient(f"{role} must be a non-reserved address")


class ReleaseToken:
    def __init__(self, name: str, symbol: str, total_supply: int,
                 base: int, sensitivity: int, steepness: int,
                 controller: bytes, euler_constant: int = EULER,
                 max_bound: int = MAX_BOUND, chain_id: int = 1):
        """
        Validate the whole configuration, then mint `total_supply` into custody.

        Raises before anything is built, so a rejected configuration never
        yields a partly initialized token.
        """
        curve = CurveParameters.create(
            base, sensitivity, steepness,
            euler_constant=euler_constant, max_bound=max_bound,
        )
        if not is_address(controller) or controller in RESERVED_ADDRESSES:
            raise InvalidParameter('controller', "Controller must be a non-reserved 20-byte address")
        if not isinstance(name, str) or not name:
            raise InvalidParameter('name')
        if not isinstance(symbol, str) or not symbol:
            raise InvalidParameter('symbol')

        events = EventLog()
        ledger = Ledger.initialize(CUSTODIAN_ADDRESS, total_supply, events)

        self._attach(name, symbol, chain_id, max_bound, curve, ledger, controller,
                     ReleaseState.PENDING, allowances={}, nonces={})
        logger.info(
            f"Token {symbol} deployed: supply={total_supply}, controller={controller.hex()}, "
            f"transition={curve.transition}"
        )

    def _attach(self, name, symbol, chain_id, max_bound, curve, ledger, controller,
                state, allowances, nonces):
        self.name = name
        self.symbol = symbol
        self.chain_id = chain_id
        self.max_bound = max_bound
        self.curve = curve
        self.ledger = ledger
        self._lock = threading.RLock()
        self.gate = ReleaseGate(ledger, controller, CUSTODIAN_ADDRESS, state, lock=self._lock)
        # {owner: {spender: amount}}
        self._allowances: dict[bytes, dict[bytes, int]] = allowances
        self._nonces: dict[bytes, int] = nonces
        self.monitor = None

    @classmethod
    def from_config(cls, config) -> 'ReleaseToken':
        """Build from a `release_ledger.config.Config`."""
        token_cfg, curve_cfg = config.token, config.curve
        return cls(
            name=token_cfg.name,
            symbol=token_cfg.symbol,
            total_supply=token_cfg.supply_units(),
            base=curve_cfg.fixed('base'),
            sensitivity=curve_cfg.fixed('sensitivity'),
            steepness=curve_cfg.fixed('steepness'),
            controller=token_cfg.controller_address(),
            euler_constant=curve_cfg.fixed('euler_constant'),
            max_bound=curve_cfg.fixed('max_bound'),
            chain_id=token_cfg.chain_id,
        )

    # ==========================================================================
    # READ-ONLY SURFACE
    # ==========================================================================

    @property
    def decimals(self) -> int:
        return DECIMALS

    @property
    def total_supply(self) -> int:
        return self.ledger.total_supply

    @property
    def controller(self) -> bytes:
        return self.gate.controller

    @property
    def released(self) -> bool:
        return self.gate.released

    @property
    def events(self) -> EventLog:
        return self.ledger.events

    @property
    def base(self) -> int:
        return self.curve.base

    @property
    def sensitivity(self) -> int:
        return self.curve.sensitivity

    @property
    def steepness(self) -> int:
        return self.curve.steepness

    @property
    def transition(self) -> int:
        return self.curve.transition

    @property
    def custodial_balance(self) -> int:
        return self.ledger.balance_of(CUSTODIAN_ADDRESS)

    def balance_of(self, principal: bytes) -> int:
        return self.ledger.balance_of(principal)

    def allowance(self, owner: bytes, spender: bytes) -> int:
        return self._allowances.get(owner, {}).get(spender, 0)

    def nonce_of(self, principal: bytes) -> int:
        return self._nonces.get(principal, 0)

    @staticmethod
    def format_amount(amount: int) -> Decimal:
        """Smallest units -> display units at 6 decimals."""
        return Decimal(amount) / Decimal(TOKEN_UNIT)

    # ==========================================================================
    # RELEASE
    # ==========================================================================

    def release(self, caller: bytes, to: bytes, amount: int):
        start = time.time()
        try:
            self.gate.release(caller, to, amount)
        except ValidationError as e:
            if self.monitor is not None:
                self.monitor.record_release(type(e).__name__, time.time() - start)
            raise
        if self.monitor is not None:
            self.monitor.record_release('released', time.time() - start)

    # ==========================================================================
    # HOLDER OPERATIONS
    # ==========================================================================

    def transfer(self, caller: bytes, to: bytes, amount: int):
        with self._lock:
            _require_holder(caller, "Sender")
            if to == CUSTODIAN_ADDRESS:
                raise InvalidRecipient("Cannot transfer into custody")
            self.ledger.transfer(caller, to, amount)

    def approve(self, caller: bytes, spender: bytes, amount: int):
        with self._lock:
            _require_holder(caller, "Owner")
            _require_counterparty(spender, "Spender")
            if not isinstance(amount, int) or isinstance(amount, bool) or not 0 <= amount <= U256_MAX:
                raise ArithmeticOverflow(f"Allowance must be an unsigned 256-bit integer, got {amount!r}")

            self._allowances.setdefault(caller, {})[spender] = amount
            self.events.emit(APPROVAL, owner=caller, spender=spender, amount=amount)

    def transfer_from(self, caller: bytes, owner: bytes, to: bytes, amount: int):
        """
        Spend an allowance. The allowance is reduced before the balances move
        and restored if the ledger rejects the transfer.
        """
        with self._lock:
            _require_holder(caller, "Spender")
            _require_holder(owner, "Owner")
            if to == CUSTODIAN_ADDRESS:
                raise InvalidRecipient("Cannot transfer into custody")

            current = self.allowance(owner, caller)
            if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
                raise ArithmeticOverflow(f"Amount must be an unsigned integer, got {amount!r}")
            if current < amount:
                raise InsufficientAllowance(f"Allowance {current} < {amount}")

            self._allowances.setdefault(owner, {})[caller] = current - amount
            try:
                self.ledger.transfer(owner, to, amount)
            except Exception:
                self._allowances.setdefault(owner, {})[caller] = current
                raise

    # ==========================================================================
    # SIGNED TRANSACTIONS
    # ==========================================================================

    def apply_transaction(self, tx: Transaction) -> bytes:
        """
        Authenticate and execute a signed transaction.

        The caller is the address of the signing key. The sender's nonce
        only advances when the transaction succeeds.

        Returns:
            the transaction id
        """
        with self._lock:
            try:
                is_valid, error = tx.validate_basic()
                if not is_valid:
                    raise InvalidTransaction(error)
                if tx.chain_id != self.chain_id:
                    raise InvalidTransaction(f"Wrong chain ID. Expected {self.chain_id}, got {tx.chain_id}")

                sender = public_key_to_address(tx.sender_public_key)
                expected_nonce = self.nonce_of(sender)
                if tx.nonce != expected_nonce:
                    raise InvalidTransaction(f"Invalid nonce. Expected {expected_nonce}, got {tx.nonce}")

                self._dispatch(tx, sender)
                self._nonces[sender] = expected_nonce + 1
            except ValidationError as e:
                logger.warning(f"Transaction {tx.tx_type} rejected: {e}")
                raise

            logger.debug(f"Transaction {tx.id.hex()[:8]} applied for {sender.hex()}")
            return tx.id

    def _dispatch(self, tx: Transaction, sender: bytes):
        data = tx.data
        amount = parse_amount(data['amount'])

        if tx.tx_type == RELEASE:
            self.release(sender, bytes.fromhex(data['to']), amount)
        elif tx.tx_type == TRANSFER:
            self.transfer(sender, bytes.fromhex(data['to']), amount)
        elif tx.tx_type == APPROVE:
            self.approve(sender, bytes.fromhex(data['spender']), amount)
        elif tx.tx_type == TRANSFER_FROM:
            self.transfer_from(sender, bytes.fromhex(data['owner']), bytes.fromhex(data['to']), amount)
        else:
            raise InvalidTransaction(f"Unknown transaction type: {tx.tx_type}")

    # ==========================================================================
    # SNAPSHOTS
    # ==========================================================================

    def to_snapshot(self) -> dict:
        """Plain-data state, string-encoded where values may exceed 64 bits."""
        with self._lock:
            return {
                'meta': {
                    'name': self.name,
                    'symbol': self.symbol,
                    'chain_id': self.chain_id,
                    'max_bound': str(self.max_bound),
                },
                'curve': self.curve.to_dict(),
                'ledger': self.ledger.to_dict(),
                'gate': self.gate.to_dict(),
                'allowances': {
                    owner.hex(): {spender.hex(): str(amt) for spender, amt in spenders.items() if amt}
                    for owner, spenders in self._allowances.items()
                },
                'nonces': {addr.hex(): n for addr, n in self._nonces.items()},
            }

    @classmethod
    def from_snapshot(cls, data: dict) -> 'ReleaseToken':
        """
        Restore a token, re-checking every invariant the live object keeps.

        Raises:
            ValidationError: the snapshot is inconsistent
        """
        meta = data['meta']
        max_bound = int(meta['max_bound'])
        curve = CurveParameters.from_dict(data['curve'], max_bound=max_bound)
        ledger = Ledger.from_dict(data['ledger'], EventLog())

        gate_data = data['gate']
        if bytes.fromhex(gate_data['custodian']) != CUSTODIAN_ADDRESS:
            raise ValidationError("Snapshot custodian does not match the reserved custodian")
        controller = bytes.fromhex(gate_data['controller'])
        if not is_address(controller) or controller in RESERVED_ADDRESSES:
            raise InvalidParameter('controller')
        state = ReleaseState(gate_data['state'])

        custodial = ledger.balance_of(CUSTODIAN_ADDRESS)
        if state is ReleaseState.PENDING and custodial != ledger.total_supply:
            raise ValidationError("Pending snapshot must hold the whole supply in custody")
        if state is ReleaseState.RELEASED and custodial != 0:
            raise ValidationError("Released snapshot still holds units in custody")

        allowances = {
            bytes.fromhex(owner): {bytes.fromhex(sp): int(amt) for sp, amt in spenders.items()}
            for owner, spenders in data.get('allowances', {}).items()
        }
        nonces = {bytes.fromhex(addr): int(n) for addr, n in data.get('nonces', {}).items()}

        token = cls.__new__(cls)
        token._attach(meta['name'], meta['symbol'], int(meta['chain_id']), max_bound, curve,
                      ledger, controller, state, allowances, nonces)
        logger.info(f"Token {token.symbol} restored in state {state.value}")
        return token

    def get_stats(self) -> dict:
        return {
            'name': self.name,
            'symbol': self.symbol,
            'decimals': DECIMALS,
            'total_supply': self.total_supply,
            'custodial_balance': self.custodial_balance,
            'released': self.released,
            'controller': self.controller.hex(),
            'holders': len(self.ledger.holders()),
            'curve': {
                'base': self.base,
                'sensitivity': self.sensitivity,
                'steepness': self.steepness,
                'transition': self.transition,
            },
        }

    def __repr__(self) -> str:
        return (
            f"ReleaseToken("
            f"symbol={self.symbol}, "
            f"supply={self.format_amount(self.total_supply)}, "
            f"released={self.released})"
        )
