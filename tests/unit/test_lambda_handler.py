"""Unit tests for AWS Lambda handler."""

from unittest.mock import MagicMock, Mock, patch

import pytest

from src.lambda_handler import lambda_handler


@pytest.fixture
def lambda_context() -> MagicMock:
    context = MagicMock()
    context.aws_request_id = "request-id"
    return context


@pytest.fixture
def api_gateway_event() -> dict:
    return {
        "version": "2.0",
        "requestContext": {
            "http": {"method": "GET", "path": "/health"},
            "requestId": "request-id",
        },
        "rawPath": "/health",
    }


@pytest.mark.unit
class TestLambdaHandler:
    """Tests for lambda_handler function."""

    @patch("src.lambda_handler.mangum_handler")
    def test_routes_requests_to_mangum(
        self, mock_mangum_handler: Mock, lambda_context: MagicMock, api_gateway_event: dict
    ) -> None:
        """Test that API Gateway events are passed to the ASGI adapter."""
        mock_mangum_handler.return_value = {"statusCode": 200, "body": '{"status":"healthy"}'}

        result = lambda_handler(api_gateway_event, lambda_context)

        mock_mangum_handler.assert_called_once_with(api_gateway_event, lambda_context)
        assert result["statusCode"] == 200

    @patch("src.lambda_handler.mangum_handler")
    def test_returns_500_on_unhandled_error(
        self, mock_mangum_handler: Mock, lambda_context: MagicMock, api_gateway_event: dict
    ) -> None:
        """Test that unexpected adapter failures do not leak details."""
        mock_mangum_handler.side_effect = RuntimeError("secret connection string")

        result = lambda_handler(api_gateway_event, lambda_context)

        assert result == {"statusCode": 500, "body": "Internal server error"}
