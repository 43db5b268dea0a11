"""
AWS Lambda handler for the Concierge Ledger pricing API.

Exposes the stateless endpoints (price and quote). The store-backed
endpoints live in main.py (Flask app).
"""

import base64
import json
import logging

from concierge_engine import ConciergeEngine
from concierge_engine import config
from concierge_engine.errors import PriceUnavailable
from concierge_engine.store import InMemoryStore

# Configure logging
logger = logging.getLogger()
logger.setLevel(config.LOG_LEVEL)

# Environment (dev, staging, prod)
ENVIRONMENT = config.ENVIRONMENT

# Initialize engine (reused across warm invocations; nothing is persisted)
engine = ConciergeEngine(store=InMemoryStore())

# CORS headers for API Gateway
CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,Authorization,X-Company-Id",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
}


def _response(status_code, payload):
    return {"statusCode": status_code, "headers": CORS_HEADERS, "body": json.dumps(payload, ensure_ascii=False)}


def lambda_handler(event, context):
    """
    Main Lambda entry point.

    Handles API Gateway events for:
    - GET /health
    - GET /api
    - POST /price
    - POST /quote
    - OPTIONS (CORS preflight)
    """
    # Handle CORS preflight
    http_method = event.get("httpMethod") or event.get("requestContext", {}).get("http", {}).get("method", "")
    if http_method == "OPTIONS":
        return {"statusCode": 200, "headers": CORS_HEADERS, "body": ""}

    # Get path (supports both REST API and HTTP API formats)
    path = event.get("path") or event.get("rawPath", "")

    if path == "/health" and http_method == "GET":
        return handle_health()
    elif path == "/api" and http_method == "GET":
        return handle_api_info()
    elif path == "/price" and http_method == "POST":
        return handle_request(event, engine.price_from_dict, "price")
    elif path == "/quote" and http_method == "POST":
        return handle_request(event, engine.quote_from_dict, "quote")
    else:
        return _response(404, {"error": "Not found", "path": path})


def handle_health():
    """Health check endpoint."""
    return _response(200, {"status": "healthy", "environment": ENVIRONMENT})


def handle_api_info():
    """API information endpoint."""
    return _response(200, {
        "status": "ok",
        "message": "Concierge Ledger API",
        "version": "1.0",
        "environment": ENVIRONMENT,
        "runtime": "AWS Lambda",
        "endpoints": {"price": "/price [POST]", "quote": "/quote [POST]", "health": "/health [GET]"},
    })


def _parse_body(event):
    """Decode the request body; None when it is empty."""
    body = event.get("body", "")
    if isinstance(body, str):
        if not body:
            return None
        # Handle base64 encoded body (API Gateway)
        if event.get("isBase64Encoded"):
            body = base64.b64decode(body).decode("utf-8")
        return json.loads(body)
    return body


def handle_request(event, operation, label):
    """Run one engine operation on the request body."""
    try:
        input_data = _parse_body(event)
        if not input_data:
            return _response(400, {"error": "No input data provided", "status": "failed"})

        logger.info(f"Processing {label} request")
        result = operation(input_data)
        return _response(200, result)

    except json.JSONDecodeError as e:
        logger.error(f"JSON parse error: {str(e)}")
        return _response(400, {"error": f"Invalid JSON: {str(e)}", "status": "failed"})

    except PriceUnavailable as e:
        logger.info(f"Price unavailable: {str(e)}")
        return _response(422, {"error": str(e), "status": "manual_price_required", "service_id": e.service_id})

    except (ValueError, KeyError, TypeError, AttributeError) as e:
        # Validation errors from engine (missing fields, invalid types, etc.)
        logger.error(f"Validation error: {str(e)}")
        return _response(400, {"error": f"Validation error: {str(e)}", "status": "validation_failed"})

    except Exception as e:
        # Log details but return a generic message
        logger.error(f"Unexpected processing error: {str(e)}", exc_info=True)
        return _response(500, {"error": "An unexpected error occurred during processing", "status": "failed"})
