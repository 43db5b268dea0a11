from flask import Flask, request, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from concierge_engine import ConciergeEngine, TenantScope
from concierge_engine import config
from concierge_engine.errors import AlreadyConverted, DocumentNotFound, MissingScope, OfferLocked, PriceUnavailable
import logging

# Configure logging
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Enable CORS for all routes (the back-office front end calls the API directly)
CORS(app)

# Initialize the engine (JSON store when CONCIERGE_STORE_PATH is set)
engine = ConciergeEngine()


def _scope() -> TenantScope:
    """Company scope from the X-Company-Id header or ?company=."""
    return TenantScope.require(request.headers.get("X-Company-Id") or request.args.get("company"))


def _body() -> dict:
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


@app.errorhandler(MissingScope)
def handle_missing_scope(e):
    logger.error(f"Missing company scope: {str(e)}")
    return jsonify({"error": str(e), "status": "missing_scope"}), 400


@app.errorhandler(ValueError)
def handle_validation_error(e):
    logger.error(f"Validation error: {str(e)}")
    return jsonify({"error": str(e), "status": "validation_failed"}), 400


@app.errorhandler(PriceUnavailable)
def handle_price_unavailable(e):
    logger.info(f"Price unavailable: {str(e)}")
    return jsonify({"error": str(e), "status": "manual_price_required", "service_id": e.service_id}), 422


@app.errorhandler(AlreadyConverted)
@app.errorhandler(OfferLocked)
def handle_conflict(e):
    logger.warning(f"Conflict: {str(e)}")
    return jsonify({"error": str(e), "status": "conflict"}), 409


@app.errorhandler(DocumentNotFound)
def handle_not_found(e):
    logger.warning(f"Not found: {str(e)}")
    return jsonify({"error": str(e), "status": "not_found"}), 404


@app.errorhandler(Exception)
def handle_unexpected(e):
    if isinstance(e, HTTPException):
        return e
    logger.error(f"Processing error: {str(e)}", exc_info=True)
    return jsonify({"error": "An unexpected error occurred", "status": "failed"}), 500


@app.route("/api", methods=["GET"])
def api_info():
    """API information endpoint"""
    return jsonify({
        "status": "ok",
        "message": "Concierge Ledger API",
        "version": "1.0",
        "environment": config.ENVIRONMENT,
        "endpoints": {
            "health": "/health [GET]",
            "price": "/price [POST]",
            "quote": "/quote [POST]",
            "offers": "/offers [POST]",
            "convert": "/offers/<offer_id>/convert [POST]",
            "booking_payments": "/bookings/<booking_id>/payments [POST]",
            "collaborators": "/collaborators [GET]",
            "collaborator_payments": "/collaborators/<collaborator_id>/payments [POST]",
            "finance_sync": "/finance/sync [POST]"
        }
    }), 200


@app.route("/health", methods=["GET"])
def health():
    """Health check for monitoring"""
    return jsonify({"status": "healthy"}), 200


@app.route("/price", methods=["POST"])
def price():
    """Resolve the unit price of one catalog service"""
    result = engine.price_from_dict(_body())
    return jsonify(result), 200


@app.route("/quote", methods=["POST"])
def quote():
    """Price an offer without saving it"""
    input_data = _body()
    logger.info(f"Pricing quote with {len(input_data.get('services') or [])} services")
    result = engine.quote_from_dict(input_data)
    return jsonify(result), 200


@app.route("/offers", methods=["POST"])
def create_offer():
    scope = _scope()
    result = engine.create_offer(scope, _body())
    logger.info(f"Offer saved: {result['offer_summary']['offer_id']}")
    return jsonify(result), 201


@app.route("/offers/<offer_id>/convert", methods=["POST"])
def convert_offer(offer_id):
    """Convert an accepted offer into a booking"""
    scope = _scope()
    data = request.get_json(force=True, silent=True) or {}
    result = engine.convert_offer(scope, offer_id, data)
    return jsonify(result), 201


@app.route("/bookings/<booking_id>/payments", methods=["POST"])
def booking_payment(booking_id):
    scope = _scope()
    result = engine.record_service_payment(scope, booking_id, _body())
    return jsonify(result), 200


@app.route("/collaborators", methods=["GET"])
def collaborators():
    """Commission and payout totals per collaborator"""
    scope = _scope()
    return jsonify({"collaborators": engine.collaborator_stats(scope)}), 200


@app.route("/collaborators/<collaborator_id>/payments", methods=["POST"])
def collaborator_payment(collaborator_id):
    scope = _scope()
    result = engine.record_collaborator_payment(scope, collaborator_id, _body())
    return jsonify(result), 201


@app.route("/finance/sync", methods=["POST"])
def finance_sync():
    scope = _scope()
    return jsonify(engine.sync_finance(scope)), 200


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=config.PORT, debug=False)
