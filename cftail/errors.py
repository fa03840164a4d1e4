"""
Error taxonomy and classification of CloudFormation call failures.

Every failure coming back from botocore is mapped onto a closed set of
``ErrorKind`` values through explicit lookup tables, so the rest of the
package only ever decides between "retry", "log and carry on" and
"give up" based on the kind.
"""

from enum import Enum
from typing import Dict, Optional, Tuple, Type

from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
    ReadTimeoutError,
    SSOTokenLoadError,
    TokenRetrievalError,
    UnauthorizedSSOTokenError,
)


class ErrorKind(Enum):
    """Failure classes for calls against the CloudFormation API."""
    TIMEOUT = "timeout"
    THROTTLED = "throttled"
    CREDENTIALS_EXPIRED = "credentials_expired"
    NO_CREDENTIALS = "no_credentials"
    STACK_NOT_FOUND = "stack_not_found"
    TRANSPORT_OR_UNKNOWN = "transport_or_unknown"

    @property
    def is_retryable(self) -> bool:
        return self in (ErrorKind.TIMEOUT, ErrorKind.THROTTLED)

    @property
    def is_fatal(self) -> bool:
        """Fatal kinds cannot be fixed by polling again with the same client."""
        return self in (
            ErrorKind.CREDENTIALS_EXPIRED,
            ErrorKind.NO_CREDENTIALS,
            ErrorKind.STACK_NOT_FOUND,
        )


# botocore ClientError codes -> kind. Anything not listed is TRANSPORT_OR_UNKNOWN.
ERROR_CODE_KINDS: Dict[str, ErrorKind] = {
    "Throttling": ErrorKind.THROTTLED,
    "ThrottlingException": ErrorKind.THROTTLED,
    "RequestLimitExceeded": ErrorKind.THROTTLED,
    "TooManyRequestsException": ErrorKind.THROTTLED,
    "RequestTimeout": ErrorKind.TIMEOUT,
    "RequestTimeoutException": ErrorKind.TIMEOUT,
    "ExpiredToken": ErrorKind.CREDENTIALS_EXPIRED,
    "ExpiredTokenException": ErrorKind.CREDENTIALS_EXPIRED,
    "RequestExpired": ErrorKind.CREDENTIALS_EXPIRED,
    "InvalidClientTokenId": ErrorKind.NO_CREDENTIALS,
    "UnrecognizedClientException": ErrorKind.NO_CREDENTIALS,
    "MissingAuthenticationToken": ErrorKind.NO_CREDENTIALS,
    # CloudFormation answers "Stack with id X does not exist" with a ValidationError
    "ValidationError": ErrorKind.STACK_NOT_FOUND,
}

# botocore exception classes -> kind, checked in order.
EXCEPTION_KINDS: Tuple[Tuple[Type[BaseException], ErrorKind], ...] = (
    (ReadTimeoutError, ErrorKind.TIMEOUT),
    (ConnectTimeoutError, ErrorKind.TIMEOUT),
    (TokenRetrievalError, ErrorKind.CREDENTIALS_EXPIRED),
    (UnauthorizedSSOTokenError, ErrorKind.CREDENTIALS_EXPIRED),
    (SSOTokenLoadError, ErrorKind.CREDENTIALS_EXPIRED),
    (NoCredentialsError, ErrorKind.NO_CREDENTIALS),
    (PartialCredentialsError, ErrorKind.NO_CREDENTIALS),
    (EndpointConnectionError, ErrorKind.TRANSPORT_OR_UNKNOWN),
    (ConnectionClosedError, ErrorKind.TRANSPORT_OR_UNKNOWN),
)


class CftailError(Exception):
    """Base class for all cftail errors."""


class ClassifiedError(CftailError):
    """A backend failure that has been mapped onto an ``ErrorKind``."""

    def __init__(self, kind: ErrorKind, message: str, stack_name: Optional[str] = None):
        self.kind = kind
        self.message = message
        self.stack_name = stack_name
        super().__init__(self._describe())

    def _describe(self) -> str:
        if self.kind == ErrorKind.STACK_NOT_FOUND and self.stack_name:
            return f"stack {self.stack_name} does not exist: {self.message}"
        if self.stack_name:
            return f"{self.kind.value} error for stack {self.stack_name}: {self.message}"
        return f"{self.kind.value} error: {self.message}"


class ResourceFetchError(CftailError):
    """Listing the resources of a stack failed during nested stack discovery."""

    def __init__(self, stack_name: str):
        self.stack_name = stack_name
        super().__init__(f"could not list resources of stack {stack_name}")


class AggregateFetchError(CftailError):
    """A per-stack event fetch failed with a fatal classification."""

    def __init__(self, error: ClassifiedError):
        self.error = error
        super().__init__(str(error))

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind


class UnmappedStatusError(CftailError):
    """CloudFormation reported a status string outside the known set."""

    def __init__(self, raw_status: str):
        self.raw_status = raw_status
        super().__init__(f"unhandled stack status: {raw_status!r}")


def classify_error(exc: BaseException, stack_name: Optional[str] = None) -> ClassifiedError:
    """
    Map a failure from the AWS SDK onto the cftail error taxonomy.

    Args:
        exc: The exception raised by botocore (or an already classified error)
        stack_name: Stack the failing call was made for

    Returns:
        ClassifiedError describing the failure
    """
    if isinstance(exc, ClassifiedError):
        return exc

    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = error.get("Code", "")
        message = error.get("Message") or str(exc)
        kind = ERROR_CODE_KINDS.get(code, ErrorKind.TRANSPORT_OR_UNKNOWN)
        return ClassifiedError(kind, message, stack_name)

    for exc_type, kind in EXCEPTION_KINDS:
        if isinstance(exc, exc_type):
            return ClassifiedError(kind, str(exc), stack_name)

    return ClassifiedError(ErrorKind.TRANSPORT_OR_UNKNOWN, str(exc), stack_name)
