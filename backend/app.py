from typing import Any

from dotenv import load_dotenv
from flask import Blueprint, Flask, current_app, jsonify, request
from flask_cors import CORS
from loguru import logger
from werkzeug.exceptions import HTTPException

load_dotenv()

from config import Settings
from errors import TrustSphereError, ValidationError
from services import Services, build_services, configure_logging
from session_utils import current_user

api = Blueprint("api", __name__, url_prefix="/api")


def get_services() -> Services:
    return current_app.extensions["trustsphere"]


def json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def submission_response(result, **extra: Any):
    body = {**result.to_dict(), **extra}
    return jsonify(body), (200 if result.confirmed else 202)


@api.route("/health")
def health():
    services = get_services()
    return jsonify(
        {
            "status": "ok",
            "algod": services.settings.algod_address,
            "indexer": services.settings.indexer_address,
            "mirror": services.settings.mirror_backend,
        }
    )


@api.route("/tx/prepare", methods=["POST"])
def tx_prepare():
    current_user()
    data = json_body()
    record_type = data.pop("recordType", None)
    sender_address = data.pop("senderAddress", None)

    unsigned_txn = get_services().builder.build(sender_address, record_type, data)
    return jsonify(
        {
            "unsignedTxn": unsigned_txn,
            "recordType": record_type,
            "message": "Sign this transaction with your Pera Wallet",
        }
    )


@api.route("/tx/broadcast", methods=["POST"])
def tx_broadcast():
    current_user()
    data = json_body()
    result = get_services().pipeline.submit(data.get("signedTxn"))
    return submission_response(result, message="Transaction submitted to Algorand")


@api.route("/tx/verify/<tx_id>", methods=["GET"])
def tx_verify(tx_id: str):
    record_type = request.args.get("type")
    if not record_type:
        raise ValidationError("Query param ?type= is required")
    result = get_services().verifier.verify(tx_id, record_type)
    return jsonify(result.to_dict())


@api.route("/tx/<tx_id>", methods=["GET"])
def tx_read(tx_id: str):
    return jsonify({"transaction": get_services().verifier.read(tx_id)})


def _handle_domain_error(exc: TrustSphereError):
    if exc.status_code >= 500:
        logger.error("{} ({}): {}", type(exc).__name__, exc.code, exc.message)
    return jsonify(exc.to_dict()), exc.status_code


def _handle_http_error(exc: HTTPException):
    code = (exc.name or "error").lower().replace(" ", "_")
    return jsonify({"error": exc.description, "code": code}), exc.code


def _handle_unexpected(exc: Exception):
    logger.exception("Unhandled error: {}", exc)
    return jsonify({"error": "Internal server error", "code": "internal_error"}), 500


def create_app(services: Services | None = None) -> Flask:
    from chain_routes import chain

    settings = services.settings if services is not None else Settings.from_env()
    if services is None:
        configure_logging(settings.log_level)
        services = build_services(settings)

    app = Flask(__name__)
    CORS(app, origins=settings.cors_origins, supports_credentials=True)
    app.extensions["trustsphere"] = services
    app.register_blueprint(api)
    app.register_blueprint(chain)
    app.register_error_handler(TrustSphereError, _handle_domain_error)
    app.register_error_handler(HTTPException, _handle_http_error)
    app.register_error_handler(Exception, _handle_unexpected)
    return app


if __name__ == "__main__":
    create_app().run(debug=True)
