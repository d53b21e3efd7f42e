from __future__ import annotations

import unittest

from catering.errors import InvalidStateTransition
from catering.services.order_state import can_transition, transition


class OrderStateMachineTestCase(unittest.TestCase):
    def test_forward_edges(self):
        self.assertTrue(can_transition("pending", "paid", "accepted"))
        self.assertTrue(can_transition("pending", "unpaid", "rejected"))
        self.assertTrue(can_transition("pending", "paid", "cancelled_before_accept"))
        self.assertTrue(can_transition("accepted", "paid", "preparing"))
        self.assertTrue(can_transition("accepted", "paid", "shipping"))
        self.assertTrue(can_transition("preparing", "paid", "shipping"))
        self.assertTrue(can_transition("shipping", "paid", "completed"))

    def test_any_non_terminal_can_be_cancelled(self):
        for status in ("pending", "accepted", "preparing", "shipping"):
            self.assertTrue(can_transition(status, "paid", "cancelled"), status)

    def test_completion_requires_payment(self):
        self.assertFalse(can_transition("shipping", "unpaid", "completed"))
        with self.assertRaises(InvalidStateTransition):
            transition("shipping", "unpaid", "completed")

    def test_completion_only_from_shipping(self):
        for status in ("pending", "accepted", "preparing"):
            with self.assertRaises(InvalidStateTransition):
                transition(status, "paid", "completed")

    def test_terminal_states_have_no_exit(self):
        for status in ("completed", "rejected", "cancelled", "cancelled_before_accept"):
            with self.assertRaises(InvalidStateTransition):
                transition(status, "paid", "shipping")

    def test_same_state_is_noop(self):
        result = transition("shipping", "paid", "shipping")
        self.assertFalse(result.changed)

    def test_terminal_on_terminal_is_noop(self):
        self.assertFalse(transition("completed", "paid", "completed").changed)
        self.assertFalse(transition("cancelled", "paid", "completed").changed)
        self.assertFalse(transition("completed", "paid", "cancelled").changed)

    def test_delivered_is_alias_of_completed(self):
        result = transition("shipping", "paid", "delivered")
        self.assertTrue(result.changed)
        self.assertEqual(result.target, "completed")

    def test_unknown_target_rejected(self):
        with self.assertRaises(InvalidStateTransition) as ctx:
            transition("pending", "paid", "teleported")
        self.assertIsInstance(ctx.exception, ValueError)

    def test_skipping_acceptance_rejected(self):
        with self.assertRaises(InvalidStateTransition):
            transition("pending", "paid", "shipping")


if __name__ == "__main__":
    unittest.main()
