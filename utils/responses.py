"""Response and persistence helpers shared by the JSON blueprints"""
import logging
from flask import jsonify, request
from sqlalchemy.exc import IntegrityError
from app import db
from services.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def success(data=None, status=200, **extra):
    body = {'success': True}
    if data is not None:
        body['data'] = data
    body.update(extra)
    return jsonify(body), status


def json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('JSON object body required')
    return data


def get_or_404(model, record_id, message='Record not found'):
    record = db.session.get(model, record_id)
    if record is None:
        raise NotFoundError(message)
    return record


def commit_or_duplicate(duplicate_message):
    """Commit, turning a unique-constraint violation into a 400 with the given message"""
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        logger.warning(f"Integrity error: {str(e.orig)}")
        raise ValidationError(duplicate_message)


def query_limit(default):
    try:
        return max(1, int(request.args.get('limit', default)))
    except ValueError:
        return default
