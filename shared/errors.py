"""
Shared error handling for PG Access Layer.
"""

from typing import Dict, Any, Optional

from pydantic import BaseModel, Field

from .logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""
    
    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class PGAccessException(Exception):
    """Base exception for PG Access Layer services."""
    
    status_code: int = 400
    
    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)
    
    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class AuthorizationError(PGAccessException):
    """Entitlement denied; callers render an upgrade prompt."""
    
    status_code = 403
    
    def __init__(self, message: str = "Your current plan does not include this feature", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class SubscriptionRequiredError(PGAccessException):
    """No active or trial subscription."""
    
    status_code = 403
    
    def __init__(self, message: str = "No active subscription found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NO_ACTIVE_SUBSCRIPTION", message, details)


class NotFoundError(PGAccessException):
    """Referenced entity does not resolve."""
    
    status_code = 404
    
    def __init__(self, code: str = "NOT_FOUND", message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(code, message, details)


class PlanNotFoundError(NotFoundError):
    """Plan id does not resolve in the catalog."""
    
    def __init__(self, plan_id: Optional[str] = None, message: str = "Plan not found", details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if plan_id is not None:
            details.setdefault("plan_id", plan_id)
        super().__init__("PLAN_NOT_FOUND", message, details)
        self.plan_id = plan_id


class InvalidConfigurationError(PGAccessException):
    """Non-numeric or negative beds/branches/price inputs."""
    
    status_code = 422
    
    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_CONFIGURATION", message, details)


class ValidationError(PGAccessException):
    """Validation-related errors."""
    
    status_code = 422
    
    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ServiceError(PGAccessException):
    """Service-related errors."""
    
    status_code = 500
    
    def __init__(self, message: str = "Service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERVICE_ERROR", message, details)
