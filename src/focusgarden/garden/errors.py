"""Caller-visible garden errors.

All are recoverable by corrective caller action; the HTTP layer maps each to
a status code through ``status_code``.
"""

from __future__ import annotations


class GardenError(ValueError):
    """Base class for garden rule violations."""

    code = "garden_error"
    status_code = 400

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__doc__ or self.code)


class AlreadyInSession(GardenError):
    """A focus session is already running."""

    code = "already_in_session"
    status_code = 409


class SpeciesUnavailable(GardenError):
    """Selected species is not available in inventory."""

    code = "species_unavailable"
    status_code = 400


class UnknownSpecies(GardenError):
    """Species not found in the catalog."""

    code = "unknown_species"
    status_code = 404


class PlantNotFound(GardenError):
    """No plant exists on that tile."""

    code = "plant_not_found"
    status_code = 404


class SessionMismatch(GardenError):
    """Active session not found."""

    code = "session_mismatch"
    status_code = 409


class InsufficientFunds(GardenError):
    """Not enough dew drops to buy this species."""

    code = "insufficient_funds"
    status_code = 402


class InvalidSessionInput(GardenError):
    """Session parameters are out of range."""

    code = "invalid_session_input"
    status_code = 422


class ConcurrentModification(GardenError):
    """The garden was modified concurrently; retry the request."""

    code = "concurrent_modification"
    status_code = 409


class StoreTimeout(GardenError):
    """The garden store did not respond in time; retry the request."""

    code = "store_timeout"
    status_code = 503
