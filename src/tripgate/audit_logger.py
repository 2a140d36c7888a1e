"""
Audit logging for login attempts.
Logs to both file and database (ActivityLog).

Audit writes are best-effort: a failure here is logged and never fails the
login request.
"""
import logging
import os
from typing import Any, Dict, Optional

from flask import current_app, has_request_context, request
from sqlalchemy.exc import SQLAlchemyError

from .config_defaults import get_config
from .models import ActivityLog, db, mask_phone

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'tripgate_audit_logger'


class AuditLogger:
    """Combined file and database audit logger"""

    def __init__(self, log_file_path: Optional[str] = None, enable_db: bool = True):
        """
        Initialize audit logger

        Args:
            log_file_path: Path to log file (None to disable file logging)
            enable_db: Whether to enable database logging (default True)
        """
        self.log_file_path = log_file_path
        self.enable_db = enable_db
        self.file_logger = None

        if log_file_path:
            self._setup_file_logger()

    def _setup_file_logger(self):
        """Setup file-based logging"""
        try:
            log_dir = os.path.dirname(self.log_file_path)
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, exist_ok=True)

            self.file_logger = logging.getLogger('tripgate.audit_file')
            self.file_logger.setLevel(logging.INFO)
            self.file_logger.propagate = False
            self.file_logger.handlers = []

            file_handler = logging.FileHandler(self.log_file_path)
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            self.file_logger.addHandler(file_handler)

            logger.info(f"File audit logging enabled: {self.log_file_path}")

        except OSError as e:
            logger.error(f"Failed to setup file audit logging: {e}")
            self.file_logger = None

    def log_login_attempt(self, identifier: Optional[str], ip_address: str, success: bool,
                          login_path: Optional[str] = None, account_id: Optional[int] = None,
                          reason: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        """
        Log a login attempt

        Args:
            identifier: Phone or login id as submitted (masked before storage)
            ip_address: Client IP address
            success: Whether the login succeeded
            login_path: Classified login path
            account_id: Resolved account (None when resolution failed)
            reason: Failure reason
            details: Extra context (secrets masked)
        """
        masked = mask_phone(identifier)

        if self.file_logger:
            result = "SUCCESS" if success else "FAILURE"
            log_msg = f"login identifier={masked} ip={ip_address} path={login_path or '-'} result={result}"
            if account_id:
                log_msg += f" account_id={account_id}"
            if reason:
                log_msg += f" reason='{reason}'"
            self.file_logger.info(log_msg)

        self._write(
            action='login',
            account_id=account_id,
            login_path=login_path,
            identifier=masked,
            ip_address=ip_address,
            status='success' if success else 'denied',
            reason=reason,
            details=details,
        )

    def log_security_event(self, event_type: str, details: str,
                           ip_address: Optional[str] = None,
                           identifier: Optional[str] = None):
        """
        Log a security event (rate limit exceeded, locked account attempt)

        Args:
            event_type: Type of security event
            details: Event details
            ip_address: Optional IP address
            identifier: Optional phone / login id
        """
        if self.file_logger:
            log_msg = f"SECURITY_EVENT type={event_type} details='{details}'"
            if ip_address:
                log_msg += f" ip={ip_address}"
            if identifier:
                log_msg += f" identifier={mask_phone(identifier)}"
            self.file_logger.warning(log_msg)

        self._write(
            action=event_type,
            identifier=mask_phone(identifier) if identifier else None,
            ip_address=ip_address or 'N/A',
            status='denied',
            reason=details,
        )

    def _write(self, action: str, ip_address: str, status: str,
               account_id: Optional[int] = None, login_path: Optional[str] = None,
               identifier: Optional[str] = None, reason: Optional[str] = None,
               details: Optional[Dict[str, Any]] = None):
        if not self.enable_db:
            return
        try:
            entry = ActivityLog(
                account_id=account_id,
                action=action,
                login_path=login_path,
                identifier=identifier,
                source_ip=ip_address,
                user_agent=request.headers.get('User-Agent') if has_request_context() else None,
                status=status,
                status_reason=reason,
            )
            entry.set_details(details)
            db.session.add(entry)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to log to database: {e}")


def init_audit_logger(app) -> AuditLogger:
    audit = AuditLogger(log_file_path=get_config('AUDIT_LOG_FILE'))
    app.extensions[EXTENSION_KEY] = audit
    return audit


def get_audit_logger() -> AuditLogger:
    return current_app.extensions[EXTENSION_KEY]
