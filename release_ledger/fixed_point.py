"""
Checked unsigned integer arithmetic for 18-decimal fixed-point values.

Values are plain Python ints interpreted as unsigned 256-bit words.
Products are formed in a 512-bit intermediate before the divide so that
`a * b / scale` never loses the high bits of the multiply step.
"""
from release_ledger.errors import ArithmeticOverflow, DivisionByZero

U256_MAX = 2**256 - 1
U512_MAX = 2**512 - 1

# 1.0 in fixed point
SCALE = 10**18

# e ~= 2.718281828459045235 at SCALE
EULER = 2_718281828459045235


def _require_u256(*values: int):
    for value in values:
        if not isinstance(value, int) or isinstance(value, bool):
            raise ArithmeticOverflow(f"Operand must be an integer, got {type(value).__name__}")
        if value < 0 or value > U256_MAX:
            raise ArithmeticOverflow(f"Operand {value} outside unsigned 256-bit range")


def scaled_mul_div(a: int, b: int, scale: int = SCALE) -> int:
    """
    Compute floor(a * b / scale).

    Raises:
        DivisionByZero: scale is zero
        ArithmeticOverflow: an operand, the intermediate product or the
            result does not fit its word size
    """
    _require_u256(a, b, scale)
    if scale == 0:
        raise DivisionByZero("Fixed-point scale must be non-zero")

    product = a * b
    if product > U512_MAX:
        raise ArithmeticOverflow("Intermediate product exceeds 512 bits")

    result = product // scale
    if result > U256_MAX:
        raise ArithmeticOverflow("Fixed-point result exceeds 256 bits")
    return result


def checked_add(a: int, b: int) -> int:
    """u256 add; overflow raises."""
    _require_u256(a, b)
    total = a + b
    if total > U256_MAX:
        raise ArithmeticOverflow(f"{a} + {b} exceeds unsigned 256-bit range")
    return total


def checked_sub(a: int, b: int) -> int:
    """u256 subtract; underflow raises."""
    _require_u256(a, b)
    if b > a:
        raise ArithmeticOverflow(f"{a} - {b} underflows")
    return a - b
