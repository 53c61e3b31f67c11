"""
Bonding-curve parameters stored for an external pricing engine.

The values are validated and frozen at construction. Only `transition`
is derived here; nothing in this package prices anything from them.
"""
from dataclasses import dataclass, asdict

from release_ledger.errors import InvalidParameter
from release_ledger.fixed_point import SCALE, EULER, scaled_mul_div

# Upper bound (exclusive) for base, sensitivity and steepness
MAX_BOUND = 10**36

BASE_FIELDS = ('base', 'sensitivity', 'steepness')


def _require_bounded(name: str, value, max_bound: int):
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidParameter(name, f"{name} must be an integer fixed-point value")
    if not 0 < value < max_bound:
        raise InvalidParameter(name, f"{name} must satisfy 0 < {name} < {max_bound}, got {value}")


def derive_transition(sensitivity: int, euler_constant: int = EULER, scale: int = SCALE) -> int:
    """transition = sensitivity * (e - 1), floor-divided at `scale`."""
    euler_minus_one = euler_constant - scale
    return scaled_mul_div(sensitivity, euler_minus_one, scale)


@dataclass(frozen=True)
class CurveParameters:
    """Immutable base configuration plus the derived transition point."""
    base: int
    sensitivity: int
    steepness: int
    transition: int
    euler_constant: int = EULER
    scale: int = SCALE

    @classmethod
    def create(cls, base: int, sensitivity: int, steepness: int,
               euler_constant: int = EULER, max_bound: int = MAX_BOUND,
               scale: int = SCALE) -> 'CurveParameters':
        """
        Validate the three base values and derive `transition`.

        Args:
            base, sensitivity, steepness: fixed-point values at `scale`
            euler_constant: e at `scale`
            max_bound: exclusive upper bound for the base values

        Raises:
            InvalidParameter: naming the first field out of bounds
            ArithmeticOverflow, DivisionByZero: from the fixed-point derivation
        """
        values = {'base': base, 'sensitivity': sensitivity, 'steepness': steepness}
        for name in BASE_FIELDS:
            _require_bounded(name, values[name], max_bound)

        if not isinstance(euler_constant, int) or euler_constant <= scale:
            raise InvalidParameter('euler_constant', "Euler constant must exceed the fixed-point scale")

        transition = derive_transition(sensitivity, euler_constant, scale)
        return cls(
            base=base,
            sensitivity=sensitivity,
            steepness=steepness,
            transition=transition,
            euler_constant=euler_constant,
            scale=scale,
        )

    def recompute_transition(self) -> int:
        return derive_transition(self.sensitivity, self.euler_constant, self.scale)

    def to_dict(self) -> dict:
        # Decimal strings: values can exceed the 64-bit msgpack int range
        return {key: str(value) for key, value in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: dict, max_bound: int = MAX_BOUND) -> 'CurveParameters':
        """Rebuild from storage, rejecting a transition that does not recompute."""
        params = cls.create(
            base=int(data['base']),
            sensitivity=int(data['sensitivity']),
            steepness=int(data['steepness']),
            euler_constant=int(data.get('euler_constant', EULER)),
            max_bound=max_bound,
            scale=int(data.get('scale', SCALE)),
        )
        stored = data.get('transition')
        if stored is not None and int(stored) != params.transition:
            raise InvalidParameter(
                'transition',
                f"Stored transition {stored} does not match derived value {params.transition}"
            )
        return params
