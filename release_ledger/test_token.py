"""
Test ReleaseToken construction, holder operations and snapshots.
"""
import unittest
from decimal import Decimal

from release_ledger.curve import MAX_BOUND
from release_ledger.errors import (
    AlreadyReleased,
    ArithmeticOverflow,
    EmptySupply,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidParameter,
    InvalidRecipient,
    Unauthorized,
    ValidationError,
)
from release_ledger.events import APPROVAL
from release_ledger.fixed_point import SCALE
from release_ledger.ledger import NULL_ADDRESS, CUSTODIAN_ADDRESS
from release_ledger.token import ReleaseToken, TOKEN_UNIT

CONTROLLER = b'\xc0' * 20
ALICE = b'\xaa' * 20
BOB = b'\xbb' * 20
CAROL = b'\xcc' * 20
SUPPLY = 1_000 * TOKEN_UNIT


def make_token(**overrides):
    kwargs = dict(
        name="Release Token",
        symbol="RLS",
        total_supply=SUPPLY,
        base=SCALE,
        sensitivity=2 * SCALE,
        steepness=5 * 10**17,
        controller=CONTROLLER,
    )
    kwargs.update(overrides)
    return ReleaseToken(**kwargs)


class TestConstruction(unittest.TestCase):
    def test_initial_state(self):
        """Test that a fresh token holds everything in custody."""
        token = make_token()
        self.assertEqual(token.total_supply, SUPPLY)
        self.assertEqual(token.custodial_balance, SUPPLY)
        self.assertFalse(token.released)
        self.assertEqual(token.controller, CONTROLLER)
        self.assertEqual(token.decimals, 6)

    def test_curve_accessors(self):
        token = make_token()
        self.assertEqual(token.base, SCALE)
        self.assertEqual(token.sensitivity, 2 * SCALE)
        self.assertEqual(token.steepness, 5 * 10**17)
        self.assertEqual(token.transition, 3436563656918090470)

    def test_out_of_bound_curve_parameter_fails(self):
        """Test that any base value at 0 or >= bound prevents construction."""
        for name in ('base', 'sensitivity', 'steepness'):
            for bad in (0, MAX_BOUND):
                with self.assertRaises(InvalidParameter) as ctx:
                    make_token(**{name: bad})
                self.assertEqual(ctx.exception.name, name)

    def test_curve_validated_before_supply(self):
        with self.assertRaises(InvalidParameter) as ctx:
            make_token(base=0, total_supply=0)
        self.assertEqual(ctx.exception.name, 'base')

    def test_reserved_controller_fails(self):
        for controller in (NULL_ADDRESS, CUSTODIAN_ADDRESS, b'\x01\x02'):
            with self.assertRaises(InvalidParameter) as ctx:
                make_token(controller=controller)
            self.assertEqual(ctx.exception.name, 'controller')

    def test_empty_metadata_fails(self):
        with self.assertRaises(InvalidParameter):
            make_token(name="")
        with self.assertRaises(InvalidParameter):
            make_token(symbol="")

    def test_empty_supply_fails(self):
        with self.assertRaises(EmptySupply):
            make_token(total_supply=0)

    def test_format_amount(self):
        """Test 6-decimal display of smallest units."""
        self.assertEqual(ReleaseToken.format_amount(1_500_000), Decimal('1.5'))
        self.assertEqual(ReleaseToken.format_amount(1), Decimal('0.000001'))


class TestHolderOperations(unittest.TestCase):
    def setUp(self):
        self.token = make_token()
        self.token.release(CONTROLLER, ALICE, SUPPLY)

    def test_transfer(self):
        self.token.transfer(ALICE, BOB, 250 * TOKEN_UNIT)
        self.assertEqual(self.token.balance_of(ALICE), 750 * TOKEN_UNIT)
        self.assertEqual(self.token.balance_of(BOB), 250 * TOKEN_UNIT)

    def test_custodian_cannot_send(self):
        """Test that nobody can move funds as the custodian."""
        token = make_token()
        with self.assertRaises(Unauthorized):
            token.transfer(CUSTODIAN_ADDRESS, ALICE, 1)
        with self.assertRaises(Unauthorized):
            token.approve(CUSTODIAN_ADDRESS, ALICE, SUPPLY)
        with self.assertRaises(Unauthorized):
            token.transfer_from(ALICE, CUSTODIAN_ADDRESS, ALICE, 0)
        self.assertEqual(token.custodial_balance, SUPPLY)

    def test_transfer_into_custody_fails(self):
        with self.assertRaises(InvalidRecipient):
            self.token.transfer(ALICE, CUSTODIAN_ADDRESS, 1)
        self.assertEqual(self.token.custodial_balance, 0)

    def test_transfer_to_null_fails(self):
        with self.assertRaises(InvalidRecipient):
            self.token.transfer(ALICE, NULL_ADDRESS, 1)

    def test_approve_and_transfer_from(self):
        """Test spending an allowance."""
        self.token.approve(ALICE, BOB, 100 * TOKEN_UNIT)
        self.assertEqual(self.token.allowance(ALICE, BOB), 100 * TOKEN_UNIT)

        self.token.transfer_from(BOB, ALICE, CAROL, 60 * TOKEN_UNIT)
        self.assertEqual(self.token.balance_of(CAROL), 60 * TOKEN_UNIT)
        self.assertEqual(self.token.allowance(ALICE, BOB), 40 * TOKEN_UNIT)

        approvals = self.token.events.events(APPROVAL)
        self.assertEqual(approvals[-1].args['amount'], 100 * TOKEN_UNIT)

    def test_transfer_from_over_allowance_fails(self):
        self.token.approve(ALICE, BOB, 10)
        with self.assertRaises(InsufficientAllowance):
            self.token.transfer_from(BOB, ALICE, CAROL, 11)
        self.assertEqual(self.token.allowance(ALICE, BOB), 10)
        self.assertEqual(self.token.balance_of(CAROL), 0)

    def test_failed_transfer_from_restores_allowance(self):
        """Test that the allowance is restored when the balance is too low."""
        self.token.transfer(ALICE, CAROL, SUPPLY - 5)
        self.token.approve(ALICE, BOB, 100)
        with self.assertRaises(InsufficientBalance):
            self.token.transfer_from(BOB, ALICE, CAROL, 50)
        self.assertEqual(self.token.allowance(ALICE, BOB), 100)

    def test_zero_transfer_from_without_approval(self):
        """Test that spending zero needs no prior approval from the owner."""
        self.token.transfer_from(BOB, ALICE, CAROL, 0)
        self.assertEqual(self.token.balance_of(ALICE), SUPPLY)
        self.assertEqual(self.token.balance_of(CAROL), 0)
        self.assertEqual(self.token.allowance(ALICE, BOB), 0)

    def test_nested_transfer_from_cannot_double_spend(self):
        """Test that a subscriber re-spending the allowance sees it reduced."""
        self.token.approve(ALICE, BOB, 100)
        nested_errors = []

        def reenter(event):
            if event.name == 'Transfer' and event.args['recipient'] == CAROL:
                try:
                    self.token.transfer_from(BOB, ALICE, CAROL, 100)
                except Exception as e:
                    nested_errors.append(e)

        self.token.events.subscribe(reenter)
        self.token.transfer_from(BOB, ALICE, CAROL, 100)

        self.assertEqual(len(nested_errors), 1)
        self.assertIsInstance(nested_errors[0], InsufficientAllowance)
        self.assertEqual(self.token.balance_of(CAROL), 100)

    def test_approve_reserved_spender_fails(self):
        with self.assertRaises(InvalidRecipient):
            self.token.approve(ALICE, CUSTODIAN_ADDRESS, 1)
        with self.assertRaises(InvalidRecipient):
            self.token.approve(ALICE, NULL_ADDRESS, 1)

    def test_negative_allowance_fails(self):
        with self.assertRaises(ArithmeticOverflow):
            self.token.approve(ALICE, BOB, -1)


class TestSnapshots(unittest.TestCase):
    def test_pending_round_trip(self):
        token = make_token()
        restored = ReleaseToken.from_snapshot(token.to_snapshot())
        self.assertFalse(restored.released)
        self.assertEqual(restored.custodial_balance, SUPPLY)
        self.assertEqual(restored.transition, token.transition)
        self.assertEqual(restored.controller, CONTROLLER)

    def test_released_state_survives_restore(self):
        """Test that a restored token can never release again."""
        token = make_token()
        token.release(CONTROLLER, ALICE, SUPPLY)
        token.approve(ALICE, BOB, 7)

        restored = ReleaseToken.from_snapshot(token.to_snapshot())
        self.assertTrue(restored.released)
        self.assertEqual(restored.balance_of(ALICE), SUPPLY)
        self.assertEqual(restored.allowance(ALICE, BOB), 7)

        with self.assertRaises(AlreadyReleased):
            restored.release(CONTROLLER, BOB, 0)

    def test_pending_snapshot_with_partial_custody_rejected(self):
        """Test that a PENDING snapshot must still hold the whole supply."""
        token = make_token()
        snapshot = token.to_snapshot()
        snapshot['ledger']['balances'] = {
            CUSTODIAN_ADDRESS.hex(): str(SUPPLY - 1),
            ALICE.hex(): '1',
        }
        with self.assertRaises(ValidationError):
            ReleaseToken.from_snapshot(snapshot)

    def test_released_snapshot_with_custody_rejected(self):
        token = make_token()
        snapshot = token.to_snapshot()
        snapshot['gate']['state'] = 'RELEASED'
        with self.assertRaises(ValidationError):
            ReleaseToken.from_snapshot(snapshot)

    def test_tampered_transition_rejected(self):
        token = make_token()
        snapshot = token.to_snapshot()
        snapshot['curve']['transition'] = '1'
        with self.assertRaises(InvalidParameter):
            ReleaseToken.from_snapshot(snapshot)


if __name__ == '__main__':
    unittest.main()
