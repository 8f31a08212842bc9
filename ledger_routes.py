import logging
from flask import Blueprint, request
from flask_login import current_user
from models import AccountsPayable, ExpenseCategory
from auth import api_login_required
from services.ledger_service import LedgerService
from services.reporting_service import ReportingService
from services.transaction_helper import TransactionHelper
from utils.responses import success, json_body, get_or_404, query_limit
from utils.validators import parse_int, parse_enum, parse_bool

logger = logging.getLogger(__name__)

ledger_bp = Blueprint('ledger', __name__)

ledger_service = LedgerService()
reporting_service = ReportingService()


@ledger_bp.route('/accounts-payable', methods=['GET'])
@api_login_required
def list_payables():
    is_paid = request.args.get('isPaid')
    payables = ledger_service.list_payables(
        bus_id=parse_int(request.args.get('busId'), 'busId'),
        category=parse_enum(ExpenseCategory, request.args.get('category'), 'category'),
        is_paid=parse_bool(is_paid) if is_paid else None,
        limit=query_limit(100),
    )
    return success([p.to_dict() for p in payables])


@ledger_bp.route('/accounts-payable', methods=['POST'])
@api_login_required
def create_payable():
    payable = ledger_service.create_payable(json_body())
    return success(payable.to_dict(), 201)


@ledger_bp.route('/accounts-payable/summary', methods=['GET'])
@api_login_required
def payables_summary():
    bus_id = parse_int(request.args.get('busId'), 'busId')
    return success(reporting_service.get_payables_summary(bus_id=bus_id))


@ledger_bp.route('/accounts-payable/<int:payable_id>', methods=['GET'])
@api_login_required
def get_payable(payable_id):
    payable = get_or_404(AccountsPayable, payable_id, 'Accounts payable record not found')
    data = payable.to_dict()
    data['payments'] = [p.to_dict() for p in payable.payments]
    return success(data)


@ledger_bp.route('/accounts-payable/<int:payable_id>', methods=['PUT'])
@api_login_required
@TransactionHelper.retry_on_conflict(1)
def update_payable(payable_id):
    payable = ledger_service.update_payable(payable_id, json_body())
    return success(payable.to_dict())


@ledger_bp.route('/accounts-payable/<int:payable_id>', methods=['DELETE'])
@api_login_required
@TransactionHelper.retry_on_conflict(1)
def delete_payable(payable_id):
    ledger_service.delete_payable(payable_id)
    logger.info(f"Payable {payable_id} deleted by user {current_user.id}")
    return success(message='Accounts payable record deleted')


@ledger_bp.route('/payments', methods=['GET'])
@api_login_required
def list_payments():
    payable_id = parse_int(request.args.get('accountsPayableId'), 'accountsPayableId')
    payments = ledger_service.list_payments(payable_id)
    return success([p.to_dict() for p in payments])


@ledger_bp.route('/payments', methods=['POST'])
@api_login_required
@TransactionHelper.retry_on_conflict(1)
def create_payment():
    data = json_body()
    payment = ledger_service.apply_payment(
        parse_int(data.get('accountsPayableId'), 'accountsPayableId'),
        data.get('amount'),
        data.get('datePaid'),
        data.get('remarks'),
    )
    return success(payment.to_dict(), 201, payable=payment.accounts_payable.to_dict())


@ledger_bp.route('/payments/<int:payment_id>', methods=['DELETE'])
@api_login_required
@TransactionHelper.retry_on_conflict(1)
def delete_payment(payment_id):
    payable = ledger_service.reverse_payment(payment_id)
    return success(payable.to_dict(), message='Payment deleted')
