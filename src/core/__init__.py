"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from src.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    SerializationException,
    ResourceNotFoundException,
    InvalidTransitionException,
    ConflictException,
    DeadlineExceededException,
    ConfigurationException,
)
from src.core.providers import Clock, IdFactory, utc_now, new_id

__all__ = [
    # Exceptions
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "SerializationException",
    "ResourceNotFoundException",
    "InvalidTransitionException",
    "ConflictException",
    "DeadlineExceededException",
    "ConfigurationException",
    # Providers
    "Clock",
    "IdFactory",
    "utc_now",
    "new_id",
]
