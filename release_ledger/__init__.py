"""
release_ledger: a fixed-supply ledger whose whole balance sits in custody
until a single authorized release.
"""
from release_ledger.curve import CurveParameters
from release_ledger.ledger import Ledger, NULL_ADDRESS, CUSTODIAN_ADDRESS
from release_ledger.release_gate import ReleaseGate, ReleaseState
from release_ledger.token import ReleaseToken, TOKEN_UNIT

__version__ = "0.1.0"
