import unittest

from moa_assistant import auth, payments
from moa_assistant.constants import PREMIUM_VALIDITY_MS
from moa_assistant.errors import ValidationFailure
from moa_assistant.session.models import UserState


class AuthTests(unittest.TestCase):
    def test_sign_in_derives_name_from_email(self) -> None:
        user = auth.sign_in("amina@example.com", "pw", method="email")
        self.assertEqual("amina", user.name)
        self.assertEqual("amina@example.com", user.email)
        self.assertIsNone(user.phone)

    def test_sign_in_with_phone(self) -> None:
        user = auth.sign_in("0712345678", "pw", method="phone")
        self.assertEqual("0712345678", user.phone)
        self.assertEqual("phone", user.auth_method)

    def test_sign_in_requires_all_fields(self) -> None:
        with self.assertRaisesRegex(ValidationFailure, "Please fill in all fields"):
            auth.sign_in("amina@example.com", "")

    def test_sign_up_checks_passwords(self) -> None:
        with self.assertRaisesRegex(ValidationFailure, "Passwords do not match"):
            auth.sign_up("Amina", "amina@example.com", "secret1", "secret2")
        with self.assertRaisesRegex(ValidationFailure, "at least 6 characters"):
            auth.sign_up("Amina", "amina@example.com", "abc", "abc")

        user = auth.sign_up("Amina", "amina@example.com", "secret1", "secret1")
        self.assertEqual("Amina", user.name)

    def test_reset_flow(self) -> None:
        with self.assertRaises(ValidationFailure):
            auth.verify_reset_identifier(" ", method="phone")
        self.assertIn("Account verified", auth.verify_reset_identifier("amina@example.com"))
        self.assertIn("successfully updated", auth.reset_password("secret1", "secret1"))

    def test_unknown_method(self) -> None:
        with self.assertRaises(ValidationFailure) as ctx:
            auth.sign_in("amina", "pw", method="fax")
        self.assertEqual("method", ctx.exception.field)

    def test_google_sign_in(self) -> None:
        self.assertEqual("google", auth.google_sign_in().auth_method)


class PaymentTests(unittest.TestCase):
    def test_mobile_money_requires_nine_digits(self) -> None:
        self.assertEqual("712345678", payments.validate_payment("mpesa", "712-345-678"))
        for phone in (None, "", "71234567", "0712345678", "71234567a"):
            with self.subTest(phone=phone):
                with self.assertRaises(ValidationFailure):
                    payments.validate_payment("airtel", phone)

    def test_card_needs_no_phone(self) -> None:
        self.assertIsNone(payments.validate_payment("card"))

    def test_unknown_method(self) -> None:
        with self.assertRaises(ValidationFailure):
            payments.validate_payment("bitcoin")

    def test_complete_payment_unlocks_premium(self) -> None:
        state = UserState()

        record = payments.complete_payment(state, "paypal", clock=lambda: 1_000)

        self.assertEqual("pay_1000", record.id)
        self.assertEqual(20, record.amount)
        self.assertTrue(state.is_premium)
        self.assertTrue(state.has_paid)
        self.assertEqual(1_000 + PREMIUM_VALIDITY_MS, state.premium_expiry_date)
        self.assertEqual([record], state.payment_history)

    def test_failed_validation_leaves_state(self) -> None:
        state = UserState()
        with self.assertRaises(ValidationFailure):
            payments.complete_payment(state, "mpesa", phone="123")
        self.assertFalse(state.is_premium)
        self.assertEqual([], state.payment_history)


if __name__ == "__main__":
    unittest.main()
