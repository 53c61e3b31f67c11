"""
Test checked fixed-point arithmetic.
"""
import unittest

from release_ledger.errors import ArithmeticOverflow, DivisionByZero
from release_ledger.fixed_point import (
    SCALE, EULER, U256_MAX, scaled_mul_div, checked_add, checked_sub,
)


class TestScaledMulDiv(unittest.TestCase):
    def test_floor_division(self):
        """Test that the result is floored, never rounded."""
        self.assertEqual(scaled_mul_div(3, 5, 2), 7)
        self.assertEqual(scaled_mul_div(1, 1, 3), 0)

    def test_fixed_point_multiplication(self):
        """Test 1.5 * 2.0 == 3.0 at 18 decimals."""
        self.assertEqual(scaled_mul_div(15 * 10**17, 2 * SCALE, SCALE), 3 * SCALE)

    def test_euler_minus_one(self):
        """Test multiplying by (e - 1) at unit sensitivity."""
        self.assertEqual(scaled_mul_div(SCALE, EULER - SCALE, SCALE), 1_718281828459045235)

    def test_zero_scale_fails(self):
        """Test that a zero scale raises DivisionByZero."""
        with self.assertRaises(DivisionByZero):
            scaled_mul_div(1, 1, 0)

    def test_wide_intermediate_product(self):
        """Test that a product above 256 bits still divides back into range."""
        a = 2**200
        b = 2**100
        self.assertEqual(scaled_mul_div(a, b, 2**100), a)

    def test_result_overflow_fails(self):
        """Test that a result wider than 256 bits is rejected."""
        with self.assertRaises(ArithmeticOverflow):
            scaled_mul_div(U256_MAX, U256_MAX, 1)

    def test_operand_out_of_range_fails(self):
        """Test that negative or oversized operands are rejected."""
        with self.assertRaises(ArithmeticOverflow):
            scaled_mul_div(-1, 1, 1)
        with self.assertRaises(ArithmeticOverflow):
            scaled_mul_div(U256_MAX + 1, 1, 1)

    def test_non_integer_operand_fails(self):
        """Test that floats are never accepted."""
        with self.assertRaises(ArithmeticOverflow):
            scaled_mul_div(1.5, SCALE, SCALE)


class TestCheckedArithmetic(unittest.TestCase):
    def test_checked_add(self):
        self.assertEqual(checked_add(2, 3), 5)
        with self.assertRaises(ArithmeticOverflow):
            checked_add(U256_MAX, 1)

    def test_checked_sub(self):
        self.assertEqual(checked_sub(5, 5), 0)
        with self.assertRaises(ArithmeticOverflow):
            checked_sub(1, 2)


if __name__ == '__main__':
    unittest.main()
