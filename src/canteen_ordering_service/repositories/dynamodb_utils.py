"""Helpers shared by the DynamoDB repositories."""

import logging
from collections.abc import Iterator
from typing import Any

from botocore.exceptions import ClientError
from mypy_boto3_dynamodb.service_resource import Table

from canteen_ordering_service.errors import ServerError

logger = logging.getLogger(__name__)

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


def is_conditional_check_failure(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == CONDITIONAL_CHECK_FAILED


def storage_error(action: str, error: ClientError) -> ServerError:
    """Log a DynamoDB failure and wrap it in an opaque ServerError.

    Args:
        action: What the repository was doing, e.g. "save order"
        error: The botocore error

    Returns:
        ServerError: To be raised by the caller
    """
    logger.error(f"Failed to {action}: {error}")
    return ServerError(f"Failed to {action}")


def iterate_pages(operation: Any, **kwargs: Any) -> Iterator[dict[str, Any]]:
    """Yield raw items from a scan or query, following LastEvaluatedKey.

    Pages are fetched lazily, one request per page.

    Args:
        operation: Bound ``table.scan`` or ``table.query``
        **kwargs: Request parameters passed to every page request

    Yields:
        dict: Raw DynamoDB items
    """
    request = dict(kwargs)
    while True:
        response = operation(**request)
        yield from response.get("Items", [])

        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return
        request["ExclusiveStartKey"] = last_key


def count_all(table: Table, **kwargs: Any) -> int:
    """Count items across all scan pages using ``Select=COUNT``."""
    request = dict(kwargs, Select="COUNT")
    total = 0
    while True:
        response = table.scan(**request)
        total += response.get("Count", 0)

        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return total
        request["ExclusiveStartKey"] = last_key
