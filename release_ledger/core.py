"""
Signed transactions addressed to a ReleaseToken.

The sender is authenticated by an ECDSA signature over the msgpack
encoding of the transaction; its principal address is derived from the
public key. Amounts travel as decimal strings so the full u256 range
survives msgpack encoding.
"""
import time
import msgpack
from typing import Optional

from .crypto import generate_hash, sign, verify_signature
from .fixed_point import U256_MAX

RELEASE = "RELEASE"
TRANSFER = "TRANSFER"
APPROVE = "APPROVE"
TRANSFER_FROM = "TRANSFER_FROM"

# Required data fields per transaction type; address fields are hex strings
TX_FIELDS = {
    RELEASE: ('to', 'amount'),
    TRANSFER: ('to', 'amount'),
    APPROVE: ('spender', 'amount'),
    TRANSFER_FROM: ('owner', 'to', 'amount'),
}


def parse_amount(value) -> int:
    """Decimal string (or int) -> unsigned amount. Raises ValueError."""
    if isinstance(value, bool):
        raise ValueError("Amount must be a decimal integer")
    amount = int(value)
    if amount < 0 or amount > U256_MAX:
        raise ValueError("Amount out of range")
    return amount


class Transaction:
    def __init__(self,
                 sender_public_key: str,
                 tx_type: str,
                 data: dict,
                 nonce: int,
                 signature: Optional[bytes] = None,
                 timestamp: Optional[float] = None,
                 chain_id: Optional[int] = 1):
        self.sender_public_key = sender_public_key
        self.tx_type = tx_type
        self.data = data
        self.nonce = nonce
        self.timestamp = timestamp or time.time()
        self.signature = signature
        self.chain_id = chain_id

    @classmethod
    def from_dict(cls, data: dict):
        """Creates a Transaction object from a dictionary."""
        signature = data.get("signature")
        if isinstance(signature, str):
            signature = bytes.fromhex(signature)
        return cls(
            sender_public_key=data["sender_public_key"],
            tx_type=data["tx_type"],
            data=data["data"],
            nonce=data["nonce"],
            signature=signature,
            timestamp=data.get("timestamp"),
            chain_id=data.get("chain_id"),
        )

    def to_dict(self, include_signature=True):
        data = {
            "sender_public_key": self.sender_public_key,
            "tx_type": self.tx_type,
            "data": self.data,
            "nonce": self.nonce,
            "timestamp": self.timestamp,
            "chain_id": self.chain_id,
        }
        if include_signature and self.signature:
            data["signature"] = self.signature
        return data

    def get_signing_data(self) -> bytes:
        """Returns the canonical byte representation for signing."""
        return msgpack.packb(self.to_dict(include_signature=False), use_bin_type=True)

    def sign(self, private_key):
        self.signature = sign(private_key, self.get_signing_data())

    def verify_signature(self) -> bool:
        if not self.signature:
            return False
        return verify_signature(
            self.sender_public_key,
            self.signature,
            self.get_signing_data()
        )

    @property
    def id(self) -> bytes:
        """The unique hash identifier of the transaction."""
        return generate_hash(self.get_signing_data())

    def validate_basic(self) -> tuple[bool, str]:
        """
        Stateless checks on the transaction.
        Returns (is_valid, error_message)
        """
        if not self.verify_signature():
            return False, "Invalid signature"

        if not isinstance(self.nonce, int) or self.nonce < 0:
            return False, "Nonce must be a non-negative integer"

        if self.timestamp > time.time() + 300:  # 5 minutes tolerance
            return False, "Timestamp too far in future"

        fields = TX_FIELDS.get(self.tx_type)
        if fields is None:
            return False, f"Unknown transaction type: {self.tx_type}"

        if not isinstance(self.data, dict):
            return False, "Transaction data must be a mapping"

        missing = [f for f in fields if f not in self.data]
        if missing:
            return False, f"{self.tx_type} requires {', '.join(repr(f) for f in fields)}"

        try:
            parse_amount(self.data['amount'])
        except (TypeError, ValueError):
            return False, "Amount must be a non-negative decimal integer"

        for name in fields:
            if name == 'amount':
                continue
            try:
                if len(bytes.fromhex(self.data[name])) != 20:
                    return False, f"'{name}' must be a 20-byte hex address"
            except (TypeError, ValueError):
                return False, f"'{name}' must be a 20-byte hex address"

        return True, ""
