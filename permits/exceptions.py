from fastapi import status


class PermitsError(Exception):
    """Base class for exceptions from within this application."""

    #: The HTTP status code with which to respond, if the exception reaches a request handler.
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, cause: BaseException | str | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class AuthenticationError(PermitsError):
    """Raised if the bearer token is missing or invalid."""

    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(PermitsError):
    """Raised if the authenticated user lacks the role required by the operation."""

    status_code = status.HTTP_403_FORBIDDEN


class ValidationError(PermitsError):
    """Raised if the request is malformed or misses required fields."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(PermitsError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(PermitsError):
    status_code = status.HTTP_409_CONFLICT


class DependencyUnavailable(PermitsError):
    """Raised if an external collaborator (converter, template origin, Firebase) cannot be reached."""


class ConverterUnavailable(DependencyUnavailable):
    """
    Raised if no converter backend produced a PDF.

    The message aggregates the failure of each backend that was tried.
    """


class TemplateUnavailable(DependencyUnavailable):
    """Raised if a document template is neither on disk nor at the request's public origin."""


class RenderError(PermitsError):
    """Raised if a template cannot be rendered with the template data, for example a malformed tag."""
