"""Failure taxonomy shared by the services and the HTTP layer.

Every service failure carries the HTTP status the transport answers with.
``StoreFailure`` is kept apart from the ``ValueError`` family: it signals a
persistence problem, not bad input.
"""

CATEGORY_NOT_OWNED = "Category not found or does not belong to your budget"


class ServiceError(ValueError):
    status_code = 400


class InvalidArgument(ServiceError):
    status_code = 400


class PreconditionFailed(ServiceError):
    status_code = 400


class Conflict(ServiceError):
    status_code = 400


class NotFound(ServiceError):
    status_code = 404


class Unauthenticated(ServiceError):
    status_code = 401


class StoreFailure(Exception):
    status_code = 500
