"""Classification of send responses and recommended error handling."""

from datetime import timedelta

from fcm_dispatch.schemas.response import (
    ActionKind,
    ErrorClassification,
    FcmResponse,
    RecommendedAction,
    RetryWait,
)

# HTTP status is authoritative for these codes
STATUS_CLASSIFICATIONS: dict[int, ErrorClassification] = {
    400: ErrorClassification.INVALID_ARGUMENT,
    401: ErrorClassification.THIRD_PARTY_AUTH_ERROR,
    403: ErrorClassification.SENDER_ID_MISMATCH,
    404: ErrorClassification.UNREGISTERED,
    429: ErrorClassification.QUOTA_EXCEEDED,
    500: ErrorClassification.INTERNAL,
    503: ErrorClassification.UNAVAILABLE,
}

UNSPECIFIED_ERROR_MARKER = "UNSPECIFIED_ERROR"

QUOTA_EXCEEDED_INITIAL_BACKOFF = timedelta(seconds=60)
UNAVAILABLE_INITIAL_BACKOFF = timedelta(seconds=10)

# Failures that need a fix rather than a retry
PERMANENT_ACTIONS: dict[ErrorClassification, ActionKind] = {
    ErrorClassification.UNREGISTERED: ActionKind.REMOVE_REGISTRATION,
    ErrorClassification.INVALID_ARGUMENT: ActionKind.FIX_MESSAGE,
    ErrorClassification.SENDER_ID_MISMATCH: ActionKind.CHECK_SENDER_ID,
    ErrorClassification.THIRD_PARTY_AUTH_ERROR: ActionKind.CHECK_THIRD_PARTY_CREDENTIALS,
}


def classify(response: FcmResponse) -> ErrorClassification:
    """
    Classify a send response.

    Checked in order: the HTTP status code, an unspecified-error marker in the
    body, a message resource name in the body. Anything else is UNKNOWN, which
    is never treated as success.

    Args:
        response: Raw send response

    Returns:
        Classification of the response
    """
    classification = STATUS_CLASSIFICATIONS.get(response.http_status_code)
    if classification is not None:
        return classification

    body = response.json_body
    if body.get("error_code") == UNSPECIFIED_ERROR_MARKER or (
        response.error_status == UNSPECIFIED_ERROR_MARKER
    ):
        return ErrorClassification.UNSPECIFIED

    if "name" in body:
        return ErrorClassification.OK

    return ErrorClassification.UNKNOWN


def recommended_action(response: FcmResponse) -> RecommendedAction | None:
    """
    Recommend how to handle a send response.

    The wait durations are floors for the caller's own exponential backoff
    with jitter; a Retry-After sent by the server replaces the floor.

    Args:
        response: Raw send response

    Returns:
        Recommended action, or None when there is nothing to do
    """
    classification = classify(response)

    if classification == ErrorClassification.QUOTA_EXCEEDED:
        return RecommendedAction(
            kind=ActionKind.REDUCE_RATE_AND_RETRY,
            wait=_retry_wait(response, QUOTA_EXCEEDED_INITIAL_BACKOFF),
        )

    if classification == ErrorClassification.UNAVAILABLE:
        return RecommendedAction(
            kind=ActionKind.RETRY,
            wait=_retry_wait(response, UNAVAILABLE_INITIAL_BACKOFF),
        )

    if classification == ErrorClassification.INTERNAL:
        # Retry-After is not meaningful for internal errors
        return RecommendedAction(
            kind=ActionKind.RETRY,
            wait=RetryWait(initial_backoff=UNAVAILABLE_INITIAL_BACKOFF),
        )

    kind = PERMANENT_ACTIONS.get(classification)
    if kind is None:
        return None
    return RecommendedAction(kind=kind)


def _retry_wait(response: FcmResponse, initial_backoff: timedelta) -> RetryWait:
    if response.retry_after is not None:
        return RetryWait(retry_after=response.retry_after)
    return RetryWait(initial_backoff=initial_backoff)
