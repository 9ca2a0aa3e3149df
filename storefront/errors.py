class StorefrontError(Exception):
    """Base error; ``status_code`` is the HTTP status the API answers with."""

    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class InvalidRequest(StorefrontError):
    status_code = 400


class NotFound(StorefrontError):
    status_code = 404


class PaymentsNotConfigured(StorefrontError):
    status_code = 500

    def __init__(self, message="Stripe is not configured"):
        super().__init__(message)


class PaymentProviderError(StorefrontError):
    status_code = 502


class WebhookVerificationError(StorefrontError):
    status_code = 400


class EmailDeliveryError(StorefrontError):
    status_code = 500
