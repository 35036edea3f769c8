"""
Custom exception hierarchy for the surfom system.
Provides clear error categories and rich error information.

Every error below is fatal to a simulation run: it signals a
parameterisation problem or a broken conservation check and is never
retried or recovered from.
"""
from typing import Optional, Any, Dict
from dataclasses import dataclass


@dataclass
class ErrorContext:
    """Context information for errors"""
    pool_name: Optional[str] = None
    date: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class SurfomError(Exception):
    """Base exception for all surfom errors"""

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()

    def __str__(self) -> str:
        context_str = ""
        if self.context.pool_name:
            context_str += f" [Pool: {self.context.pool_name}]"
        if self.context.date:
            context_str += f" [Date: {self.context.date}]"
        if self.context.component:
            context_str += f" [Component: {self.context.component}]"
        if self.context.operation:
            context_str += f" [Operation: {self.context.operation}]"

        return f"{self.__class__.__name__}: {self.message}{context_str}"


# Configuration errors
class ConfigurationError(SurfomError):
    """Configuration error"""
    pass


class NotFoundError(ConfigurationError):
    """Named residue type, tillage type or pool not found"""
    pass


# Physics model errors
class PhysicsModelError(SurfomError):
    """Base class for physics model errors"""
    pass


class MassImbalanceError(PhysicsModelError):
    """Mass conservation violation"""
    pass


class InsufficientMassError(MassImbalanceError):
    """Requested removal exceeds the mass available in a pool"""
    pass


# Input errors
class InputError(SurfomError):
    """Operation request is missing required information"""
    pass


def handle_exception(exc: Exception, context: Optional[ErrorContext] = None) -> SurfomError:
    """
    Wrap generic exceptions in SurfomError hierarchy.
    Useful for catching and categorizing third-party exceptions.
    """
    if isinstance(exc, SurfomError):
        return exc

    error_map = {
        FileNotFoundError: ConfigurationError,
        KeyError: NotFoundError,
        ValueError: InputError,
        ArithmeticError: PhysicsModelError,
    }

    for exc_type, surfom_exc_type in error_map.items():
        if isinstance(exc, exc_type):
            return surfom_exc_type(str(exc), context)

    return SurfomError(str(exc), context)
