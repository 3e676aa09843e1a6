"""Errors raised by the rental engine and the stores.

Every error is an expected, recoverable condition. ``kind`` is the stable
discriminator clients can switch on; the message is for humans.
"""


class LibraryError(Exception):
    kind = "library_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(LibraryError):
    kind = "not_found"

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class OutOfStock(LibraryError):
    kind = "out_of_stock"

    def __init__(self, book_id):
        super().__init__(f"No copies of book {book_id} available")
        self.book_id = book_id


class RentalLimitExceeded(LibraryError):
    kind = "rental_limit_exceeded"

    def __init__(self, user_id, limit: int):
        super().__init__(f"User {user_id} already has {limit} active rentals")
        self.user_id = user_id
        self.limit = limit


class AlreadyReturned(LibraryError):
    kind = "already_returned"

    def __init__(self, rental_id):
        super().__init__(f"Rental {rental_id} already returned")
        self.rental_id = rental_id


class InvalidInput(LibraryError):
    kind = "invalid_input"
