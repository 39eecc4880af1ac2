"""
User-facing error text.

Internal details (SQL, file paths, tracebacks) are logged in full and never shown to users in production.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime

logger = logging.getLogger(__name__)

GENERIC_MESSAGES = {
    "database": "A database error occurred. Please try again later.",
    "validation": "Invalid input provided. Please check your data and try again.",
    "authentication": "Authentication failed. Please check your credentials.",
    "authorization": "You do not have permission to access this resource.",
    "not_found": "The requested resource was not found.",
    "server_error": "An unexpected error occurred. Our team has been notified.",
    "file_upload": "File upload failed. Please check the file and try again.",
    "network": "A network error occurred. Please check your connection.",
    "timeout": "The request timed out. Please try again.",
    "rate_limit": "Too many requests. Please wait a moment and try again.",
}

_FILE_PATH_RE = re.compile(r"(?:[A-Za-z]:)?[/\\][\w/\\\-.]+\.(?:py|pyc|php|sql|log|ini|cfg|db)\b")
_SQL_VERB_RE = re.compile(r"\b(?:SELECT|INSERT|UPDATE|DELETE)\b", re.IGNORECASE)
_SQL_ANY_RE = re.compile(r"\b(?:SELECT|INSERT|UPDATE|DELETE|DROP|CREATE|ALTER)\b", re.IGNORECASE)
_TRACE_RE = re.compile(r"#\d+\s+|Traceback \(most recent call last\)|File \"[^\"]+\", line \d+")
_TABLE_RE = re.compile(r"\btable\s+[`\"'][^`\"']+[`\"']", re.IGNORECASE)
_COLUMN_RE = re.compile(r"\bcolumn\s+[`\"'][^`\"']+[`\"']", re.IGNORECASE)
_DB_WORDS_RE = re.compile(r"\b(?:SQLSTATE|sqlalchemy|psycopg2?|pymysql|mysqli|PDO|database|query)\b", re.IGNORECASE)


def generic_message(category: str = "server_error") -> str:
    return GENERIC_MESSAGES.get(category, GENERIC_MESSAGES["server_error"])


class ErrorMessages:
    def __init__(self, is_production: bool = True) -> None:
        self.is_production = is_production

    def user_message(
        self,
        error: BaseException | str,
        category: str = "server_error",
        custom: str | None = None,
        context: dict | None = None,
    ) -> str:
        """Log the real error, then return what the user may see."""
        if isinstance(error, BaseException):
            logger.error("%s: %s context=%s", type(error).__name__, error, context or {}, exc_info=error)
            raw = str(error)
        else:
            logger.error("%s context=%s", error, context or {})
            raw = error
        if not self.is_production:
            return raw
        if custom is not None:
            cleaned = self.sanitize(custom)
            if self.is_safe(cleaned):
                return cleaned
        return generic_message(category)

    def sanitize(self, message: str) -> str:
        if not self.is_production:
            return message
        message = _FILE_PATH_RE.sub("[file]", message)
        message = _SQL_VERB_RE.sub("[SQL]", message)
        message = _TRACE_RE.sub("", message)
        message = _TABLE_RE.sub("table [redacted]", message)
        message = _COLUMN_RE.sub("column [redacted]", message)
        return message

    @staticmethod
    def is_safe(message: str) -> bool:
        for pattern in (_FILE_PATH_RE, _SQL_ANY_RE, _TRACE_RE, _DB_WORDS_RE):
            if pattern.search(message):
                return False
        return True

    def json_error(self, error: BaseException | str, category: str = "server_error", context: dict | None = None) -> dict:
        return {
            "success": False,
            "error": True,
            "message": self.user_message(error, category, context=context),
            "timestamp": datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S"),
        }


def error_messages_from_config(config: dict) -> ErrorMessages:
    env = (config.get("ENV") or "").strip().lower()
    return ErrorMessages(is_production=env in ("prod", "production"))
