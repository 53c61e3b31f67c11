"""
Configuration management for a token deployment.
"""
import json
import os
from dataclasses import dataclass, asdict, field
from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from release_ledger.curve import MAX_BOUND
from release_ledger.errors import InvalidParameter
from release_ledger.fixed_point import SCALE, EULER

FixedValue = Union[int, str]


def to_fixed(name: str, value: FixedValue, scale: int = SCALE) -> int:
    """
    ints are taken as raw fixed-point values; strings are decimal numbers
    and get scaled, so "2.5" -> 2.5 * 10**18.
    """
    if isinstance(value, bool):
        raise InvalidParameter(name)
    if isinstance(value, int):
        return value
    try:
        with localcontext() as ctx:
            ctx.prec = 100
            scaled = Decimal(str(value)) * scale
    except InvalidOperation:
        raise InvalidParameter(name, f"{name} is not a decimal number: {value!r}")
    if scaled != scaled.to_integral_value():
        raise InvalidParameter(name, f"{name} has more precision than the fixed-point scale")
    return int(scaled)


@dataclass
class TokenConfig:
    """Token and custody configuration."""
    name: str = "Release Token"
    symbol: str = "RLS"
    total_supply: int = 1_000_000_000 * 10**6  # smallest units
    controller: str = ""  # hex address
    chain_id: int = 1

    def supply_units(self) -> int:
        return int(self.total_supply)

    def controller_address(self) -> bytes:
        try:
            return bytes.fromhex(self.controller)
        except (TypeError, ValueError):
            raise InvalidParameter('controller', "Controller must be a hex address")


@dataclass
class CurveConfig:
    """Curve parameters; see `to_fixed` for accepted value forms."""
    base: FixedValue = "1"
    sensitivity: FixedValue = "2"
    steepness: FixedValue = "0.5"
    euler_constant: FixedValue = EULER
    max_bound: FixedValue = MAX_BOUND

    def fixed(self, name: str) -> int:
        return to_fixed(name, getattr(self, name))


@dataclass
class DatabaseConfig:
    """Database configuration."""
    path: str = "./release_ledger_data"
    write_buffer_size: int = 4 * 1024 * 1024  # 4MB
    max_open_files: int = 100
    compression: str = "snappy"


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 9090


@dataclass
class Config:
    """Main configuration."""
    token: TokenConfig = field(default_factory=TokenConfig)
    curve: CurveConfig = field(default_factory=CurveConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def default(cls) -> 'Config':
        """Create default configuration."""
        return cls(
            token=TokenConfig(),
            curve=CurveConfig(),
            database=DatabaseConfig(),
            monitoring=MonitoringConfig()
        )

    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        return cls(
            token=TokenConfig(**data.get('token', {})),
            curve=CurveConfig(**data.get('curve', {})),
            database=DatabaseConfig(**data.get('database', {})),
            monitoring=MonitoringConfig(**data.get('monitoring', {}))
        )

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    def to_file(self, path: str):
        """Save configuration to JSON file."""
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict:
        return {
            'token': asdict(self.token),
            'curve': asdict(self.curve),
            'database': asdict(self.database),
            'monitoring': asdict(self.monitoring)
        }
