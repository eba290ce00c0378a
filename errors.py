from flask import jsonify, request
from marshmallow import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import NoResultFound
from werkzeug.exceptions import HTTPException
from models import db
import logging

logger = logging.getLogger(__name__)

# ============================================
# 業務錯誤
# ============================================

class ApiError(Exception):
    """
    由業務邏輯丟出的錯誤, 由全域 error handler 轉成 JSON 回應

    Attributes:
        status: HTTP status code
        message: 給前端看的訊息
        code: 機器可讀的錯誤代碼 (例如 NOT_FOUND, SCHEDULE_CONFLICT)
        details: 額外資訊 (可選)
    """

    def __init__(self, status, message, code='API_ERROR', details=None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.code = code
        self.details = details

    def to_dict(self):
        body = {
            'error': self.code,
            'message': self.message,
            'status': self.status
        }
        if self.details is not None:
            body['details'] = self.details
        return body


def not_found(resource):
    return ApiError(404, f'{resource} not found', 'NOT_FOUND')


def forbidden(message='Permission denied'):
    return ApiError(403, message, 'FORBIDDEN')


def error_response(status, code, message, details=None):
    return jsonify(ApiError(status, message, code, details).to_dict()), status

# ============================================
# 資料庫錯誤分類
# ============================================

# PostgreSQL SQLSTATE
PG_UNIQUE_VIOLATION = '23505'
PG_FOREIGN_KEY_VIOLATION = '23503'
PG_NOT_NULL_VIOLATION = '23502'


def classify_integrity_error(error):
    """
    把 IntegrityError 分類成 (status, code, message)

    PostgreSQL 用 pgcode 判斷, SQLite 只能看錯誤訊息
    """
    orig = getattr(error, 'orig', None)
    pgcode = getattr(orig, 'pgcode', None) or getattr(orig, 'sqlstate', None)
    text = str(orig if orig is not None else error).lower()

    if pgcode == PG_UNIQUE_VIOLATION or 'unique' in text or 'duplicate' in text:
        return 409, 'DUPLICATE_ERROR', 'A record with the same unique value already exists'
    if pgcode == PG_FOREIGN_KEY_VIOLATION or 'foreign key' in text:
        return 400, 'FOREIGN_KEY_ERROR', 'Referenced record does not exist'
    if pgcode == PG_NOT_NULL_VIOLATION or 'not null' in text:
        return 400, 'MISSING_RELATION_ERROR', 'A required relation or field is missing'
    return 400, 'DATABASE_VALIDATION_ERROR', 'The data violates a database constraint'

# ============================================
# 全域錯誤處理
# ============================================

def register_error_handlers(app):
    """
    註冊全域 error handlers

    改進點:
    1. ORM 錯誤統一轉成對應的 HTTP status
    2. 不洩漏錯誤細節給前端
    3. 業務錯誤和資料庫錯誤都會 rollback, 請求中途的修改不會殘留在 session
    """

    @app.errorhandler(ApiError)
    def handle_api_error(error):
        db.session.rollback()
        if error.status >= 500:
            logger.error(f"API error {error.code}: {error.message}")
        else:
            logger.info(f"API error {error.code} on {request.method} {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error):
        db.session.rollback()
        return error_response(400, 'VALIDATION_ERROR', 'Validation failed', error.messages)

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(error):
        db.session.rollback()
        status, code, message = classify_integrity_error(error)
        logger.warning(f"Integrity error on {request.method} {request.path}: {error.orig}")
        return error_response(status, code, message)

    @app.errorhandler(NoResultFound)
    def handle_no_result(error):
        db.session.rollback()
        return error_response(404, 'NOT_FOUND', 'The requested record does not exist')

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error):
        db.session.rollback()
        logger.error(f"Database error: {str(error)}", exc_info=True)
        return error_response(500, 'DATABASE_ERROR', 'A database error occurred')

    @app.errorhandler(400)
    def bad_request(error):
        """處理 400 錯誤 (包含無法解析的 JSON)"""
        return error_response(400, 'bad_request', 'The request is malformed or invalid')

    @app.errorhandler(404)
    def resource_not_found(error):
        return error_response(404, 'not_found', 'The requested resource does not exist')

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response(405, 'method_not_allowed', 'The HTTP method is not allowed for this endpoint')

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        logger.warning(f"Rate limit exceeded from: {request.remote_addr}")
        return error_response(429, 'rate_limit_exceeded', 'Too many requests. Please try again later.')

    @app.errorhandler(500)
    def internal_server_error(error):
        """
        處理 500 錯誤

        記錄完整的 stack trace 到 log, 只給前端看通用訊息
        """
        db.session.rollback()
        logger.error(f"Internal server error: {str(error)}", exc_info=True)
        return error_response(500, 'internal_server_error',
                              'An internal error occurred. Our team has been notified.')

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        """最後的防線, 捕捉所有沒被處理的 exception"""
        if isinstance(error, HTTPException):
            return error_response(error.code, error.name.lower().replace(' ', '_'), error.description)

        db.session.rollback()
        logger.error(f"Unexpected error: {str(error)}", exc_info=True)
        return error_response(500, 'unexpected_error', 'An unexpected error occurred. Please try again later.')
