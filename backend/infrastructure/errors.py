"""
Error Handling for the wallet valuation engine
Structured exceptions, read results, and FastAPI handlers

Features:
- Custom exception classes
- Explicit result type for fallible contract reads
- Structured JSON error responses
- Error tracking and aggregation
"""

import logging
import traceback
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Generic, Optional, TypeVar
from enum import Enum

from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse

logger = logging.getLogger("ErrorHandler")


# ============================================
# ERROR CODES
# ============================================

class ErrorCode(str, Enum):
    # Client errors (4xx)
    BAD_REQUEST = "BAD_REQUEST"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    BLOCKCHAIN_ERROR = "BLOCKCHAIN_ERROR"

    # Valuation
    POSITION_NOT_VALUED = "POSITION_NOT_VALUED"


# ============================================
# CUSTOM EXCEPTIONS
# ============================================

class EngineError(Exception):
    """Base exception for the valuation engine"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Dict = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now()

    def to_dict(self) -> Dict:
        return {
            "success": False,
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp.isoformat()
            }
        }


class ValidationError(EngineError):
    """Input validation error"""
    def __init__(self, message: str, details: Dict = None):
        super().__init__(message, ErrorCode.VALIDATION_ERROR, 400, details)


class NotFoundError(EngineError):
    """Resource not found"""
    def __init__(self, resource: str, identifier: str = None, code: ErrorCode = ErrorCode.NOT_FOUND):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} '{identifier}' not found"
        super().__init__(message, code, 404)


class BlockchainError(EngineError):
    """RPC call failed on every attempted endpoint"""
    def __init__(self, chain: str, message: str, attempts: int = None):
        details = {"chain": chain}
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__(message, ErrorCode.BLOCKCHAIN_ERROR, 502, details)


# ============================================
# READ RESULTS
# ============================================

class ReadErrorKind(str, Enum):
    """Why a contract read produced no value"""
    REVERTED = "reverted"
    TIMEOUT = "timeout"
    DECODE = "decode"
    TRANSPORT = "transport"


T = TypeVar('T')


@dataclass(frozen=True)
class ReadResult(Generic[T]):
    """
    Outcome of a single fallible contract read.

    Callers pick the default explicitly with unwrap_or() instead of relying
    on a swallowed exception somewhere below them.
    """
    value: Optional[T] = None
    error: Optional[ReadErrorKind] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok and self.value is not None else default

    @classmethod
    def success(cls, value: T) -> "ReadResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ReadErrorKind, message: str = None) -> "ReadResult[T]":
        return cls(error=kind, message=message)


def classify_read_error(error: Exception) -> ReadErrorKind:
    """Map a web3 / transport exception onto a ReadErrorKind"""
    name = type(error).__name__.lower()
    text = str(error).lower()
    if isinstance(error, TimeoutError) or "timeout" in name or "timed out" in text:
        return ReadErrorKind.TIMEOUT
    if "revert" in name or "execution reverted" in text or "contractlogic" in name:
        return ReadErrorKind.REVERTED
    if "decod" in name or "decod" in text or "badfunctioncalloutput" in name:
        return ReadErrorKind.DECODE
    return ReadErrorKind.TRANSPORT


# ============================================
# ERROR TRACKING
# ============================================

class ErrorTracker:
    """Tracks and aggregates errors for monitoring"""

    def __init__(self, max_errors: int = 1000):
        self.errors: list = []
        self.max_errors = max_errors
        self.error_counts: Dict[str, int] = {}

    def track(self, error: Exception, request_path: str = None):
        """Track an error"""
        error_type = type(error).__name__

        self.error_counts[error_type] = self.error_counts.get(error_type, 0) + 1

        error_info = {
            "type": error_type,
            "message": str(error),
            "path": request_path,
            "timestamp": datetime.now().isoformat(),
            "traceback": traceback.format_exc() if not isinstance(error, EngineError) else None
        }

        if isinstance(error, EngineError):
            error_info["code"] = error.code.value
            error_info["details"] = error.details

        self.errors.append(error_info)

        if len(self.errors) > self.max_errors:
            self.errors = self.errors[-self.max_errors:]

        if not isinstance(error, EngineError) or error.status_code >= 500:
            logger.error(f"Error tracked: {error_type} - {str(error)[:200]}")

    def get_stats(self) -> Dict:
        """Get error statistics"""
        return {
            "total_errors": len(self.errors),
            "error_counts": self.error_counts,
            "recent_errors": self.errors[-10:],
            "timestamp": datetime.now().isoformat()
        }

    def clear(self):
        """Clear error history"""
        self.errors.clear()
        self.error_counts.clear()


# ============================================
# FASTAPI EXCEPTION HANDLERS
# ============================================

def _tracker(request: Request) -> Optional[ErrorTracker]:
    return getattr(request.app.state, "error_tracker", None)


async def engine_exception_handler(request: Request, exc: EngineError) -> JSONResponse:
    """Handle EngineError exceptions"""
    tracker = _tracker(request)
    if tracker:
        tracker.track(exc, str(request.url.path))

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTPExceptions"""
    tracker = _tracker(request)
    if tracker:
        tracker.track(exc, str(request.url.path))

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": {
                "code": ErrorCode.BAD_REQUEST.value if exc.status_code < 500 else ErrorCode.INTERNAL_ERROR.value,
                "message": exc.detail,
                "timestamp": datetime.now().isoformat()
            }
        }
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions"""
    tracker = _tracker(request)
    if tracker:
        tracker.track(exc, str(request.url.path))

    logger.error(f"Unhandled exception: {traceback.format_exc()}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": ErrorCode.INTERNAL_ERROR.value,
                "message": "An unexpected error occurred",
                "timestamp": datetime.now().isoformat()
            }
        }
    )


def register_exception_handlers(app):
    """Register all exception handlers with FastAPI app"""
    app.add_exception_handler(EngineError, engine_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered")
