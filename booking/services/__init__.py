"""
Booking services module.

Provides the domain logic behind BookingOrchestrator.

Services:
- slot_inventory: Slot generation, availability, claim/release, blocking
- appointment_service: Appointment state machine (create/reschedule/cancel)
- appointment_query_service: Read projections (get/list/stats)
- service_catalog: Service soft deletion guarded by active appointments
"""

from booking.services.appointment_query_service import (
    AppointmentPage,
    AppointmentQueryService,
    AppointmentStats,
    Pagination,
    load_appointment,
)
from booking.services.appointment_service import (
    ALLOWED_TRANSITIONS,
    AppointmentService,
    ensure_transition,
)
from booking.services.service_catalog import deactivate_service
from booking.services.slot_inventory import SlotInventory

__all__ = [
    # Slot inventory
    "SlotInventory",
    # State machine
    "ALLOWED_TRANSITIONS",
    "AppointmentService",
    "ensure_transition",
    # Queries
    "AppointmentPage",
    "AppointmentQueryService",
    "AppointmentStats",
    "Pagination",
    "load_appointment",
    # Catalog
    "deactivate_service",
]
