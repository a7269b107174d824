class ReservationError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"message": self.message}


class SlotConflict(ReservationError):
    status_code = 409

    def __init__(self, reservation_id: str | None, reserver: dict | None = None):
        super().__init__("Slot already reserved or booked")
        self.reservation_id = reservation_id
        self.reserver = reserver

    def to_dict(self) -> dict:
        body = {"message": self.message, "reservation_id": self.reservation_id}
        if self.reserver:
            body["reserver"] = self.reserver
        return body


class TurfUnavailable(ReservationError):
    status_code = 404

    def __init__(self, turf_ref: str):
        super().__init__("Turf not available")
        self.turf_ref = turf_ref


class NotFound(ReservationError):
    status_code = 404

    def __init__(self, reservation_id: str):
        super().__init__("Reservation not found")
        self.reservation_id = reservation_id


class NotAuthorized(ReservationError):
    status_code = 403

    def __init__(self, operation: str):
        super().__init__("Not authorized")
        self.operation = operation


class InvalidState(ReservationError):
    status_code = 409

    def __init__(self, reservation_id: str, current: str, requested: str):
        super().__init__(f"Cannot move reservation from {current} to {requested}")
        self.reservation_id = reservation_id
        self.current = current
        self.requested = requested


class PaymentVerificationFailed(ReservationError):
    status_code = 400

    def __init__(self, reservation_id: str):
        super().__init__("Payment verification failed")
        self.reservation_id = reservation_id


class InvalidSlots(ReservationError):
    status_code = 422


class UpstreamUnavailable(ReservationError):
    status_code = 503


class SyntheticOrderWarning(UserWarning):
    """A synthetic gateway order was handed out; it can never be paid."""
