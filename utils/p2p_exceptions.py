"""
P2P Engine Exceptions
Error taxonomy raised by the order book, trade engine and conversation log.
Every error is a locally recoverable rejection reported to the caller.
"""


class P2PError(Exception):
    """Base class for rejected P2P operations"""

    error_code = "P2P_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(P2PError):
    """Malformed input to a create or send call"""

    error_code = "VALIDATION_ERROR"


class NotFoundError(P2PError):
    """Referenced order or trade id is absent"""

    error_code = "NOT_FOUND"


class SelfTradeError(P2PError):
    """Acceptor is the owner of the order"""

    error_code = "SELF_TRADE"


class AmountOutOfRangeError(P2PError):
    """Trade amount falls outside the order's min/max bounds"""

    error_code = "AMOUNT_OUT_OF_RANGE"


class UnsupportedPaymentMethodError(P2PError):
    """Payment method is not offered by the order"""

    error_code = "UNSUPPORTED_PAYMENT_METHOD"


class UnauthorizedError(P2PError):
    """Actor does not hold the role the operation requires"""

    error_code = "UNAUTHORIZED"


class InvalidStateError(P2PError):
    """Operation attempted from a status that does not permit it"""

    error_code = "INVALID_STATE"
