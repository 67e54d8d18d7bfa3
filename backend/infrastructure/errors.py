"""
Error Handling for the Agent Core

Every failure the core reports carries an ErrorCode. Inside an agent cycle the
code travels back in the ExecutionResult; at the HTTP surface the same errors
are rendered as JSON by the handlers registered in register_exception_handlers.
"""

import logging
from collections import Counter, deque
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from enum import Enum

from fastapi import Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("AgentCoreErrors")


# ============================================
# ERROR CODES
# ============================================

class ErrorCode(str, Enum):
    # Rejected before anything touches the chain
    UNREGISTERED_AGENT = "UNREGISTERED_AGENT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNSUPPORTED_ACTION = "UNSUPPORTED_ACTION"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    LIMIT_EXCEEDED = "LIMIT_EXCEEDED"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"

    # Raised while acting
    UNIMPLEMENTED_ACTION = "UNIMPLEMENTED_ACTION"
    EXECUTION_FAILED = "EXECUTION_FAILED"
    BLOCKCHAIN_ERROR = "BLOCKCHAIN_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


HTTP_STATUS_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    422: ErrorCode.VALIDATION_ERROR,
}


def _error_body(code: ErrorCode, message: str, details: Optional[Dict] = None) -> Dict:
    return {
        "success": False,
        "error": {
            "code": code.value,
            "message": message,
            "details": details or {},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    }


# ============================================
# EXCEPTIONS
# ============================================

class AgentCoreError(Exception):
    """Base exception; `code` is what callers branch on, `status_code` is for HTTP"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: Dict[str, Any] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict:
        return _error_body(self.code, self.message, self.details)


class ValidationError(AgentCoreError):
    """Malformed trigger, rule, model or action"""
    def __init__(self, message: str, details: Dict = None):
        super().__init__(message, ErrorCode.VALIDATION_ERROR, 400, details)


class NotFoundError(AgentCoreError):
    def __init__(self, resource: str, identifier: str = None):
        subject = f"{resource} '{identifier}'" if identifier else resource
        super().__init__(f"{subject} not found", ErrorCode.NOT_FOUND, 404)


class UnregisteredAgentError(AgentCoreError):
    """Agent must be registered before it can run"""
    def __init__(self, agent_id: str):
        super().__init__(
            f"Agent {agent_id} not registered",
            ErrorCode.UNREGISTERED_AGENT,
            404,
            {"agent_id": str(agent_id)}
        )
        self.agent_id = agent_id


class UnsupportedActionError(AgentCoreError):
    """Action type has no validator or handler"""
    def __init__(self, action: str):
        super().__init__(f"Unknown action: {action}", ErrorCode.UNSUPPORTED_ACTION, 400, {"action": action})


class UnimplementedActionError(AgentCoreError):
    """Action type is recognised but has no execution path yet"""
    def __init__(self, action: str):
        super().__init__(
            f"{action.capitalize()} execution not implemented yet",
            ErrorCode.UNIMPLEMENTED_ACTION,
            501,
            {"action": action}
        )


class ExecutionError(AgentCoreError):
    """An execution handler failed; the cause is kept in details"""
    def __init__(self, action: str, message: str, original_error: Exception = None):
        details = {"action": action}
        if original_error is not None:
            details["cause"] = type(original_error).__name__
        super().__init__(message, ErrorCode.EXECUTION_FAILED, 500, details)
        self.original_error = original_error


class BlockchainError(AgentCoreError):
    """RPC, signing or contract call failed"""
    def __init__(self, chain: str, message: str, tx_hash: str = None):
        details = {"chain": chain}
        if tx_hash:
            details["tx_hash"] = tx_hash
        super().__init__(message, ErrorCode.BLOCKCHAIN_ERROR, 502, details)


class ChainTimeoutError(BlockchainError):
    """Blockchain call did not answer in time"""
    def __init__(self, chain: str, timeout_seconds: float):
        super().__init__(chain, f"Blockchain call timed out after {timeout_seconds}s")
        self.code = ErrorCode.TIMEOUT_ERROR
        self.status_code = 504
        self.details["timeout_seconds"] = timeout_seconds


# ============================================
# ERROR TRACKING
# ============================================

class ErrorTracker:
    """
    Rolling record of caught errors.

    Counts are kept per error code (exception class name for errors that
    are not AgentCoreError) and per source, e.g. "agent:7" or a request path.
    """

    def __init__(self, max_errors: int = 1000):
        self.recent: deque = deque(maxlen=max_errors)
        self.by_code: Counter = Counter()
        self.by_source: Counter = Counter()

    def track(self, error: Exception, source: Optional[str] = None):
        if isinstance(error, AgentCoreError):
            key = error.code.value
            status = error.status_code
        else:
            key = type(error).__name__
            status = 500

        self.by_code[key] += 1
        if source:
            self.by_source[source] += 1

        self.recent.append({
            "code": key,
            "message": str(error),
            "source": source,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

        if status >= 500:
            logger.error(f"[{source or '-'}] {key}: {str(error)[:200]}")

    def get_stats(self) -> Dict:
        return {
            "total_errors": len(self.recent),
            "by_code": dict(self.by_code),
            "by_source": dict(self.by_source),
            "recent_errors": list(self.recent)[-10:],
        }

    def clear(self):
        self.recent.clear()
        self.by_code.clear()
        self.by_source.clear()


error_tracker = ErrorTracker()


# ============================================
# FASTAPI EXCEPTION HANDLERS
# ============================================

async def agent_core_exception_handler(request: Request, exc: AgentCoreError) -> JSONResponse:
    error_tracker.track(exc, request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies get the same envelope as everything else"""
    return JSONResponse(
        status_code=422,
        content=_error_body(ErrorCode.VALIDATION_ERROR, "Invalid request", {"errors": exc.errors()}),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    return JSONResponse(status_code=exc.status_code, content=_error_body(code, str(exc.detail)))


async def unexpected_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    error_tracker.track(exc, request.url.path)
    logger.exception(f"Unhandled exception on {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=_error_body(ErrorCode.INTERNAL_ERROR, "An unexpected error occurred"),
    )


def register_exception_handlers(app):
    app.add_exception_handler(AgentCoreError, agent_core_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unexpected_exception_handler)
    logger.info("Exception handlers registered")
