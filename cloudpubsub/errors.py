import inspect
import sys


class PubSubError(RuntimeError):
    retriable = False

    def __str__(self):
        if not self.args:
            return self.__class__.__name__
        return '{0}: {1}'.format(self.__class__.__name__,
                                 super(PubSubError, self).__str__())


class IllegalStateError(PubSubError):
    pass


class IllegalArgumentError(PubSubError):
    pass


class PubSubConfigurationError(PubSubError):
    pass


class PubSubTimeoutError(PubSubError):
    pass


class ServiceError(PubSubError):
    """Error status returned by the Pub/Sub service.

    Subclasses are keyed by the canonical gRPC status code the service
    reports, see for_code().
    """
    code = None
    message = None
    description = None

    def __str__(self):
        """Add status code to standard PubSubError str"""
        return '[Status {0}] {1}'.format(
            self.code,
            super(ServiceError, self).__str__())


class CancelledError(ServiceError):
    code = 1
    message = 'CANCELLED'
    description = 'The operation was cancelled, typically by the caller.'
    retriable = True


class UnknownError(ServiceError):
    code = 2
    message = 'UNKNOWN'
    description = 'An unexpected server or transport error.'


class InvalidArgumentError(ServiceError):
    code = 3
    message = 'INVALID_ARGUMENT'
    description = ('The client specified an invalid argument, such as a'
                   ' malformed resource name or an out of range ack deadline.')


class DeadlineExceededError(ServiceError):
    code = 4
    message = 'DEADLINE_EXCEEDED'
    description = 'The deadline expired before the operation could complete.'
    retriable = True


class NotFoundError(ServiceError):
    code = 5
    message = 'NOT_FOUND'
    description = 'The requested topic or subscription does not exist.'


class AlreadyExistsError(ServiceError):
    code = 6
    message = 'ALREADY_EXISTS'
    description = 'The topic or subscription the client tried to create already exists.'


class PermissionDeniedError(ServiceError):
    code = 7
    message = 'PERMISSION_DENIED'
    description = ('The caller does not have permission to execute the'
                   ' specified operation.')


class ResourceExhaustedError(ServiceError):
    code = 8
    message = 'RESOURCE_EXHAUSTED'
    description = 'A quota or the service capacity has been exhausted.'
    retriable = True


class FailedPreconditionError(ServiceError):
    code = 9
    message = 'FAILED_PRECONDITION'
    description = ('The operation was rejected because the resource is not in'
                   ' a state required for the operation.')


class ConflictError(ServiceError):
    code = 10
    message = 'ABORTED'
    description = ('The operation was aborted by a concurrency conflict, such'
                   ' as an IAM policy etag that no longer matches the'
                   ' server-side etag.')


class OutOfRangeError(ServiceError):
    code = 11
    message = 'OUT_OF_RANGE'
    description = 'The operation was attempted past the valid range.'


class UnimplementedError(ServiceError):
    code = 12
    message = 'UNIMPLEMENTED'
    description = 'The operation is not implemented or supported by the service.'


class InternalError(ServiceError):
    code = 13
    message = 'INTERNAL'
    description = 'An internal invariant of the service was broken.'
    retriable = True


class UnavailableError(ServiceError):
    code = 14
    message = 'UNAVAILABLE'
    description = 'The service is currently unavailable.'
    retriable = True


class UnauthenticatedError(ServiceError):
    code = 16
    message = 'UNAUTHENTICATED'
    description = ('The request does not have valid authentication credentials'
                   ' for the operation.')


def _iter_service_errors():
    for name, obj in inspect.getmembers(sys.modules[__name__]):
        if inspect.isclass(obj) and issubclass(obj, ServiceError) and obj != ServiceError:
            yield obj


service_errors = dict([(x.code, x) for x in _iter_service_errors()])


def for_code(status_code):
    if status_code in service_errors:
        return service_errors[status_code]
    else:
        # Keep the status code of errors we do not know about (newer service
        # versions may add codes) by creating a dynamic class with code override.
        return type('UnrecognizedServiceError', (UnknownError,), {'code': status_code})
