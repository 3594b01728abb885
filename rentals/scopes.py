from enum import StrEnum


class BookingScope(StrEnum):
    # Customer scopes
    READ = "bookings:read"  # view own bookings
    WRITE = "bookings:write"  # create a booking, upload documents
    CANCEL = "bookings:cancel"  # cancel own booking
    SIGN = "agreements:sign"  # sign own rental agreement

    # Staff scopes
    MANAGE = "bookings:manage"  # review documents, hand over / take back vehicles

    # Admin scopes
    ADMIN = "admin:bookings"
    ADMIN_READ = "admin:bookings:read"
    ADMIN_WRITE = "admin:bookings:write"


BOOKING_SCOPE_DESCRIPTIONS: dict[str, str] = {
    BookingScope.READ: "View your own bookings.",
    BookingScope.WRITE: "Create a booking and upload your documents.",
    BookingScope.CANCEL: "Cancel your own booking before it starts.",
    BookingScope.SIGN: "Sign the rental agreement for your own booking.",
    BookingScope.MANAGE: "Review documents, record inspections and move bookings along.",
    BookingScope.ADMIN_READ: "Read any booking regardless of owner (admin).",
    BookingScope.ADMIN_WRITE: "Modify any booking status (admin).",
}
