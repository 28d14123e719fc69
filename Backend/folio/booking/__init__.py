"""
Booking engine - interval model, availability policy, store and service.
"""
from .interval import Interval
from .policy import Accepted, BookingConfig, Candidate, Rejected, RejectionReason, evaluate
from .service import BookingOutcome, BookingRequest, BookingService
from .store import BookingStore, SlotConflict, SqlBookingStore, StorageUnavailable

__all__ = [
    "Interval",
    "Accepted",
    "BookingConfig",
    "Candidate",
    "Rejected",
    "RejectionReason",
    "evaluate",
    "BookingOutcome",
    "BookingRequest",
    "BookingService",
    "BookingStore",
    "SlotConflict",
    "SqlBookingStore",
    "StorageUnavailable",
]
