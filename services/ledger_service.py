"""
Ledger Service

Accounts-payable reconciliation: applying and reversing payments and keeping
each payable's derived fields (paid_amount, is_paid, paid_date) equal to what
its payment rows say.

The derived fields are always recomputed from the full payment set, never
adjusted incrementally. The paid check uses a fixed 0.01 tolerance to absorb
currency rounding.
"""

from typing import Optional, List, Dict, Any
import logging
from datetime import date
from decimal import Decimal
from models import db, AccountsPayable, Payment, Bus, ExpenseCategory
from utils.validators import (parse_positive_decimal, parse_date, parse_int, parse_enum,
                              require_fields, optional_text)
from .transaction_helper import TransactionHelper
from .exceptions import NotFoundError, ValidationError, BalanceExceededError

logger = logging.getLogger(__name__)

# TODO: make per-currency if multi-currency payables are ever supported
PAID_TOLERANCE = Decimal('0.01')

PAYABLE_TEXT_FIELDS = {
    'description': 'description',
    'supplier': 'supplier',
    'invoiceNumber': 'invoice_number',
    'notes': 'notes',
}


def total_paid(payments) -> Decimal:
    return sum((p.amount for p in payments), Decimal('0'))


def is_fully_paid(paid_amount: Decimal, amount_owed: Decimal) -> bool:
    return paid_amount >= amount_owed - PAID_TOLERANCE


def exceeds_balance(paid_amount: Decimal, amount_owed: Decimal) -> bool:
    return paid_amount > amount_owed + PAID_TOLERANCE


class LedgerService:
    """Service class for payment application and payable reconciliation"""

    def _lock_payable(self, payable_id: int) -> AccountsPayable:
        """Load the payable under a row lock (SELECT ... FOR UPDATE)"""
        payable = db.session.execute(
            db.select(AccountsPayable)
            .where(AccountsPayable.id == payable_id)
            .with_for_update()
        ).scalar_one_or_none()
        if payable is None:
            raise NotFoundError("Accounts payable record not found")
        return payable

    def _load_payments(self, payable_id: int) -> List[Payment]:
        return db.session.execute(
            db.select(Payment)
            .where(Payment.accounts_payable_id == payable_id)
            .order_by(Payment.date_paid, Payment.id)
        ).scalars().all()

    def _apply_totals(self, payable: AccountsPayable, paid_amount: Decimal,
                      paid_on: Optional[date]) -> AccountsPayable:
        payable.paid_amount = paid_amount
        payable.is_paid = is_fully_paid(paid_amount, payable.amount)
        payable.paid_date = paid_on if payable.is_paid else None
        return payable

    def reconcile(self, payable: AccountsPayable, paid_on: Optional[date] = None) -> AccountsPayable:
        """
        Recompute a payable's derived fields from its payment rows.

        Args:
            payable: Payable to reconcile (already loaded in this session)
            paid_on: Settlement date to record if the payable is paid.
                Defaults to the existing paid_date, then to the latest
                payment date.

        Returns:
            The updated payable
        """
        payments = self._load_payments(payable.id)
        paid_amount = total_paid(payments)
        if paid_on is None:
            paid_on = payable.paid_date or (max(p.date_paid for p in payments) if payments else None)
        return self._apply_totals(payable, paid_amount, paid_on)

    def list_payments(self, payable_id) -> List[Payment]:
        if not payable_id:
            raise ValidationError("accountsPayableId is required")
        return Payment.query.filter_by(accounts_payable_id=payable_id) \
            .order_by(Payment.date_paid.desc(), Payment.id.desc()).all()

    @TransactionHelper.with_transaction
    def apply_payment(self, payable_id, amount, date_paid, remarks=None) -> Payment:
        """
        Apply a payment against a payable.

        The balance check, the payment insert and the payable update run in
        one transaction with the payable row locked; the payable's version
        column makes a concurrent writer fail instead of overpaying.

        Args:
            payable_id: ID of the payable being paid
            amount: Positive payment amount
            date_paid: Date the payment was made
            remarks: Optional free text

        Returns:
            The created Payment

        Raises:
            ValidationError: missing/non-positive amount or missing/invalid date
            NotFoundError: payable does not exist
            BalanceExceededError: payment would overpay beyond tolerance
        """
        if not payable_id:
            raise ValidationError("accountsPayableId, amount, and datePaid are required")
        amount = parse_positive_decimal(amount, 'amount')
        date_paid = parse_date(date_paid, 'datePaid')
        if date_paid is None:
            raise ValidationError("datePaid is required")

        payable = self._lock_payable(payable_id)
        current_paid = total_paid(self._load_payments(payable.id))

        was_paid = is_fully_paid(current_paid, payable.amount)
        # Once settled, only the cents still short of the exact amount are accepted
        settled_overpay = was_paid and current_paid + amount > payable.amount
        if settled_overpay or exceeds_balance(current_paid + amount, payable.amount):
            remaining = max(payable.amount - current_paid, Decimal('0'))
            logger.warning(
                f"Rejected payment of {amount} on payable {payable.id}: "
                f"remaining balance {remaining:.2f}"
            )
            raise BalanceExceededError(f"Payment exceeds remaining balance of {remaining:.2f}")

        payment = Payment()
        payment.accounts_payable_id = payable.id
        payment.amount = amount
        payment.date_paid = date_paid
        payment.remarks = optional_text(remarks)
        db.session.add(payment)
        db.session.flush()

        paid_on = payable.paid_date if was_paid and payable.paid_date else date_paid
        self._apply_totals(payable, current_paid + amount, paid_on)

        logger.info(
            f"Payment {payment.id} of {amount} applied to payable {payable.id} "
            f"(paid {payable.paid_amount} of {payable.amount}, is_paid={payable.is_paid})"
        )
        return payment

    @TransactionHelper.with_transaction
    def reverse_payment(self, payment_id) -> AccountsPayable:
        """
        Delete a payment and reconcile its payable from the remaining payments.

        Returns:
            The reconciled payable

        Raises:
            NotFoundError: payment does not exist
        """
        payment = db.session.get(Payment, payment_id) if payment_id else None
        if payment is None:
            raise NotFoundError("Payment not found")

        payable = self._lock_payable(payment.accounts_payable_id)
        db.session.delete(payment)
        db.session.flush()

        remaining = self._load_payments(payable.id)
        paid_amount = total_paid(remaining)
        # Still settled: keep the original settlement date
        paid_on = payable.paid_date or (max(p.date_paid for p in remaining) if remaining else None)
        self._apply_totals(payable, paid_amount, paid_on)

        logger.info(
            f"Payment {payment_id} reversed on payable {payable.id} "
            f"(paid {payable.paid_amount} of {payable.amount}, is_paid={payable.is_paid})"
        )
        return payable

    @TransactionHelper.with_transaction
    def reconcile_payable(self, payable_id) -> AccountsPayable:
        """Lock and reconcile a payable, e.g. after its amount was edited"""
        payable = self._lock_payable(payable_id)
        return self.reconcile(payable)

    def _apply_payable_fields(self, payable: AccountsPayable, data: Dict[str, Any]):
        # paidAmount, isPaid and paidDate are derived and never taken from input
        for key, attr in PAYABLE_TEXT_FIELDS.items():
            if key in data:
                setattr(payable, attr, optional_text(data.get(key)))
        if 'busId' in data:
            payable.bus_id = parse_int(data.get('busId'), 'busId')
        if 'category' in data:
            payable.category = parse_enum(ExpenseCategory, data.get('category'), 'category')
        if 'amount' in data:
            payable.amount = parse_positive_decimal(data.get('amount'), 'amount')
        if 'dueDate' in data:
            payable.due_date = parse_date(data.get('dueDate'), 'dueDate')
        if 'maintenanceId' in data:
            payable.maintenance_id = parse_int(data.get('maintenanceId'), 'maintenanceId')
        if 'sparePartId' in data:
            payable.spare_part_id = parse_int(data.get('sparePartId'), 'sparePartId')

    @TransactionHelper.with_transaction
    def create_payable(self, data: Dict[str, Any]) -> AccountsPayable:
        require_fields(data, 'busId', 'category', 'description', 'amount',
                       message="Bus, category, description, and amount are required")

        payable = AccountsPayable()
        self._apply_payable_fields(payable, data)
        if db.session.get(Bus, payable.bus_id) is None:
            raise NotFoundError("Bus not found")

        payable.paid_amount = Decimal('0')
        payable.is_paid = False
        payable.paid_date = None
        db.session.add(payable)
        db.session.flush()

        logger.info(f"Payable {payable.id} of {payable.amount} created for bus {payable.bus_id}")
        return payable

    @TransactionHelper.with_transaction
    def update_payable(self, payable_id, data: Dict[str, Any]) -> AccountsPayable:
        """
        Edit a payable's descriptive fields and amount.

        A changed amount re-derives the paid status from the existing
        payments, so lowering the amount can settle the payable and raising
        it can reopen it.
        """
        payable = self._lock_payable(payable_id)
        if 'description' in data and not optional_text(data.get('description')):
            raise ValidationError("Description is required")

        previous_amount = payable.amount
        self._apply_payable_fields(payable, data)
        if payable.amount != previous_amount:
            logger.info(f"Payable {payable.id} amount changed from {previous_amount} to {payable.amount}")
            self.reconcile(payable)
        return payable

    @TransactionHelper.with_transaction
    def delete_payable(self, payable_id) -> None:
        """Delete a payable together with its payments"""
        payable = self._lock_payable(payable_id)
        payment_count = len(payable.payments)
        db.session.delete(payable)
        logger.info(f"Payable {payable_id} deleted with {payment_count} payment(s)")

    def list_payables(self, bus_id=None, category=None, is_paid=None, limit=100) -> List[AccountsPayable]:
        query = AccountsPayable.query
        if bus_id:
            query = query.filter(AccountsPayable.bus_id == bus_id)
        if category:
            query = query.filter(AccountsPayable.category == category)
        if is_paid is not None:
            query = query.filter(AccountsPayable.is_paid.is_(is_paid))
        return query.order_by(AccountsPayable.due_date.asc().nulls_last(),
                              AccountsPayable.id.desc()).limit(limit).all()
