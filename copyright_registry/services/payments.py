import secrets
import structlog
from typing import Optional

from copyright_registry.models.track import Payment, PaymentStatus

logger = structlog.get_logger()

# Statuses a payment may be moved out of, per target status
INVOICE_FROM = (PaymentStatus.INITIAL.value,)
APPROVE_FROM = (PaymentStatus.INITIAL.value, PaymentStatus.PENDING.value)
APPROVE_PAID_FROM = (PaymentStatus.PENDING.value,)
REJECT_FROM = (PaymentStatus.INITIAL.value, PaymentStatus.PENDING.value)

class PaymentError(Exception):
    """Base exception for payment operations."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

class PaymentNotFoundError(PaymentError):
    pass

class InvalidPaymentStateError(PaymentError):
    pass

def new_control_number() -> str:
    """Random 12-character invoice control number."""
    return secrets.token_hex(6).upper()

class PaymentService:
    """
    Moves registration payments through initial -> pending -> approved/rejected.

    Every transition is a conditional update on the current status, so a
    payment that was settled concurrently is reported instead of overwritten.
    """

    def __init__(self, store):
        self.store = store

    def get(self, payment_id: str) -> Payment:
        row = self.store.get_payment(payment_id)
        if row is None:
            raise PaymentNotFoundError(f"Payment not found: {payment_id}")
        return Payment(**row)

    def generate_invoice(self, payment_id: str) -> Payment:
        """Issue a control number and wait for the artist to pay."""
        return self._transition(payment_id, PaymentStatus.PENDING, INVOICE_FROM,
                                control_number=new_control_number())

    def approve(self, payment_id: str, amount_paid: Optional[int] = None) -> Payment:
        """
        Approve a payment.

        With amount_paid the artist's payment against an invoice is recorded,
        which requires the payment to be pending. Without it a financial
        administrator approves an open payment directly.
        """
        allowed = APPROVE_FROM if amount_paid is None else APPROVE_PAID_FROM
        return self._transition(payment_id, PaymentStatus.APPROVED, allowed, amount_paid=amount_paid)

    def reject(self, payment_id: str) -> Payment:
        return self._transition(payment_id, PaymentStatus.REJECTED, REJECT_FROM)

    def _transition(self, payment_id: str, status: PaymentStatus, allowed, **changes) -> Payment:
        current = self.get(payment_id)
        if current.status not in allowed:
            raise InvalidPaymentStateError(
                f"Payment is {current.status}, expected one of: {', '.join(allowed)}"
            )

        row = self.store.update_payment_status(payment_id, status.value, allowed, **changes)
        if row is None:
            raise InvalidPaymentStateError("Payment status changed concurrently")

        logger.info("Payment status changed", payment_id=payment_id, track_id=current.track_id,
                   old_status=current.status, new_status=status.value)
        return Payment(**row)
