import logging
import sys
import os
from typing import Dict, Any, Optional
import traceback
from datetime import datetime, timezone
import json

# Extra record attributes copied into the JSON payload when present
STRUCTURED_FIELDS = (
    "request_id",
    "endpoint",
    "profile_id",
    "medicine_id",
    "schedule_id",
    "error_code",
    "error_details",
)

# Configure structured logging
class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Add extra fields if present
        for field in STRUCTURED_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)
        if hasattr(record, 'execution_time'):
            log_entry['execution_time_ms'] = record.execution_time

        # Add exception details if present
        if record.exc_info:
            log_entry['exception'] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info)
            }

        return json.dumps(log_entry, default=str)

def setup_logging(log_level: Optional[str] = None):
    """Configure application logging"""

    # Get log level from environment
    log_level = (log_level or os.environ.get("LOG_LEVEL", "INFO")).upper()

    # Create root logger
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Remove default handlers
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    # Create console handler with structured formatting
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(StructuredFormatter())
    logger.addHandler(console_handler)

    # Silence some noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("hpack").setLevel(logging.WARNING)

    return logger

# Application error classes
class AppError(Exception):
    """Base application error"""
    def __init__(self, message: str, error_code: str = None, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code or "GENERAL_ERROR"
        self.details = details or {}
        super().__init__(self.message)

class ValidationError(AppError):
    """Input validation error"""
    def __init__(self, message: str, field: str = None, details: Dict[str, Any] = None):
        super().__init__(message, "VALIDATION_ERROR", details)
        self.field = field

class NotFoundError(AppError):
    """Requested record does not exist"""
    def __init__(self, entity: str, record_id: str):
        super().__init__(f"{entity} {record_id} not found", "NOT_FOUND", {
            "entity": entity,
            "id": record_id
        })

class StateConflict(AppError):
    """Dose already resolved"""
    def __init__(self, schedule_id: str, status: str):
        super().__init__(f"Schedule {schedule_id} is already {status}", "STATE_CONFLICT", {
            "schedule_id": schedule_id,
            "status": status
        })

class ExternalServiceError(AppError):
    """External service error (notification webhook, Sentry, etc.)"""
    def __init__(self, service: str, message: str, status_code: int = None):
        super().__init__(f"{service} error: {message}", "EXTERNAL_SERVICE_ERROR", {
            "service": service,
            "status_code": status_code
        })

class DatabaseError(AppError):
    """Database operation error"""
    def __init__(self, operation: str, message: str):
        super().__init__(f"Database {operation} failed: {message}", "DATABASE_ERROR", {
            "operation": operation
        })

class StorageUnavailable(DatabaseError):
    """Record store could not be reached"""
    def __init__(self, operation: str, message: str):
        super().__init__(operation, message)
        self.error_code = "STORAGE_UNAVAILABLE"

# Error reporting utilities
def log_error(logger: logging.Logger, error: Exception, context: Dict[str, Any] = None):
    """Log an error with context"""
    context = context or {}

    if isinstance(error, AppError):
        logger.error(
            f"Application error: {error.message}",
            extra={
                "error_code": error.error_code,
                "error_details": error.details,
                **context
            },
            exc_info=True
        )
    else:
        logger.error(
            f"Unexpected error: {str(error)}",
            extra=context,
            exc_info=True
        )

def log_api_call(logger: logging.Logger,
                endpoint: str,
                execution_time: float = None,
                status_code: int = None,
                request_id: str = None):
    """Log API call metrics"""
    logger.info(
        f"API call completed: {endpoint}",
        extra={
            "endpoint": endpoint,
            "execution_time": execution_time,
            "status_code": status_code,
            "request_id": request_id
        }
    )
