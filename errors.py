"""Exceptions raised by the service layer and mapped to HTTP errors by the API."""

from __future__ import annotations


class VehicleHealthError(Exception):
    """Base class for every domain error in this project."""


class NotFoundError(VehicleHealthError):
    """The entity does not exist, or it belongs to another user.

    Both cases are reported the same way so callers cannot discover
    other users' records.
    """

    def __init__(self, entity: str):
        self.entity = entity
        super().__init__(f"{entity} not found")


class InvalidTransitionError(VehicleHealthError):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change appointment status from {current} to {requested}")


class DuplicateError(VehicleHealthError):
    def __init__(self, message: str):
        super().__init__(message)
