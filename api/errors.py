"""Service-level exceptions, mapped to HTTP responses by the handler in main.py."""


class ServiceException(Exception):
    status_code = 500

    def __init__(self, detail):
        super().__init__(detail)
        self.detail = detail

    def __str__(self):
        return str(self.detail)


class InvalidInput(ServiceException):
    status_code = 400


class InvalidAmount(InvalidInput):
    pass


class SignatureMismatch(ServiceException):
    status_code = 400


class NotAuthenticated(ServiceException):
    status_code = 401


class Forbidden(ServiceException):
    status_code = 403


class SubscriptionRequired(Forbidden):
    """The user has never had a subscription"""


class SubscriptionInactive(Forbidden):
    """The user's current subscription is expired or cancelled"""


class NotFound(ServiceException):
    status_code = 404


class Conflict(ServiceException):
    status_code = 409


class GatewayUnconfigured(ServiceException):
    pass


class GatewayAuthFailed(ServiceException):
    pass


class GatewayError(ServiceException):
    pass
