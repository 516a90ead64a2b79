from enum import StrEnum


class BookingScope(StrEnum):
    # Customer scopes
    READ = "bookings:read"  # view own bookings
    WRITE = "bookings:write"  # create a booking
    CANCEL = "bookings:cancel"  # cancel own booking

    # Console scopes (staff, branch managers, company admins)
    MANAGE = "bookings:manage"  # any booking in the company: status, reschedule

    # Admin scopes
    ADMIN = "admin:bookings"


class TrainerBookingScope(StrEnum):
    READ = "trainer-bookings:read"
    MANAGE = "trainer-bookings:manage"  # create / update / remove


BOOKING_SCOPE_DESCRIPTIONS: dict[str, str] = {
    BookingScope.READ: "View your own bookings.",
    BookingScope.WRITE: "Create a new court booking.",
    BookingScope.CANCEL: "Cancel your own pending or confirmed booking.",
    BookingScope.MANAGE: "Manage every booking of the company (console users).",
    BookingScope.ADMIN: "Full access to bookings of any company (admin).",
    TrainerBookingScope.READ: "View trainer bookings of the company.",
    TrainerBookingScope.MANAGE: "Create, update and cancel trainer bookings.",
}
