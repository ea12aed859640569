class DomainException(Exception):
    pass


class NotFoundError(DomainException):
    pass


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class NoteNotFoundError(NotFoundError):
    def __init__(self, note_id: str):
        self.note_id = note_id
        super().__init__(f"Note {note_id} not found")


class AttachmentNotFoundError(NotFoundError):
    def __init__(self, attachment_id: str):
        self.attachment_id = attachment_id
        super().__init__(f"Attachment {attachment_id} not found")


class ConflictError(DomainException):
    pass


class OrderAlreadyInStateError(ConflictError):
    def __init__(self, status):
        self.status = status
        super().__init__(
            "This action cannot be completed because the order is already in this state. "
            "Please refresh the page."
        )


class InvalidTransitionError(ConflictError):
    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(
            f"This action cannot be completed because the order's status was updated by someone else "
            f"(cannot move from '{current.value}' to '{target.value}'). Please refresh the page."
        )


class ConcurrentModificationError(ConflictError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(
            f"Order {order_id} was updated by someone else. Please refresh the page."
        )


class ForbiddenError(DomainException):
    pass


class InvalidArgumentError(DomainException):
    pass


class UploadError(DomainException):
    pass


class InternalError(DomainException):
    pass


class OrderFeedError(DomainException):
    pass


class DuplicateSourceOrderError(ConflictError):
    def __init__(self, source_order_id: str):
        self.source_order_id = source_order_id
        super().__init__(f"External order {source_order_id} has already been imported")
