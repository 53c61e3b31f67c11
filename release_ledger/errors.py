"""
Error kinds raised by the ledger, the release gate and the curve parameters.

Every error rejects the triggering operation; nothing it attempted is kept.
"""


class ValidationError(Exception):
    """Raised when validation fails."""
    pass


class InvalidParameter(ValidationError):
    """A construction-time value is missing or out of bounds."""

    def __init__(self, name: str, message: str = None):
        self.name = name
        super().__init__(message or f"Invalid parameter: {name}")


class EmptySupply(ValidationError):
    pass


class ArithmeticOverflow(ValidationError):
    pass


class DivisionByZero(ValidationError):
    pass


class InsufficientBalance(ValidationError):
    pass


class InsufficientAllowance(ValidationError):
    pass


class InvalidRecipient(ValidationError):
    pass


class Unauthorized(ValidationError):
    pass


class AlreadyReleased(ValidationError):
    pass


class AmountMismatch(ValidationError):
    pass


class InvalidTransaction(ValidationError):
    """Signature, chain id, nonce or payload of a transaction is wrong."""
    pass
