"""Shared domain building blocks."""

from .entity import Entity, EntityId
from .exceptions import DomainError, ValidationError
from .value_object import ValueObject

__all__ = ["DomainError", "Entity", "EntityId", "ValidationError", "ValueObject"]
