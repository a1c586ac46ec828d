"""
Transaction handlers for the booking core.

BookingOrchestrator opens one transaction per mutating operation and
returns BookingResult values carrying either the result or a typed error.

Key design principles:
1. Row locks (SELECT FOR UPDATE) around every slot claim
2. Recheck availability inside the transaction, never retry on conflict
3. Complete rollback on any failure
4. Logging with trace_id for every operation
"""

from booking.transactions.booking_orchestrator import BookingOrchestrator, BookingResult

__all__ = ["BookingOrchestrator", "BookingResult"]
