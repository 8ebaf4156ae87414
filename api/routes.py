"""
API routes for the CardLead scanning API.

Flask REST API endpoints for scanning business cards and QR codes.
"""

import logging
from typing import Any, Dict, Optional

from flask import Blueprint, request, jsonify

from cardlead.errors import ErrorKind
from cardlead.pipeline import CardScanPipeline
from config import Config

logger = logging.getLogger(__name__)

# Create Blueprint
api_bp = Blueprint("api", __name__, url_prefix="/api")

# Pipeline instance (lazy initialization)
_pipeline: Optional[CardScanPipeline] = None


def get_pipeline() -> CardScanPipeline:
    """Get or create pipeline instance.

    Returns:
        CardScanPipeline instance
    """
    global _pipeline

    if _pipeline is None:
        _pipeline = CardScanPipeline(Config)
        logger.info("Pipeline initialized with provider order: " + ", ".join(Config.PROVIDER_ORDER))

    return _pipeline


def _json_body() -> Optional[Dict[str, Any]]:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else None


def _invalid_body():
    return jsonify({"success": False, "error": "Request body must be a JSON object"}), 400


def _respond(result: Dict[str, Any]):
    """Map a pipeline payload to an HTTP response."""
    if result.get("success"):
        return jsonify(result), 200
    if result.get("errorKind") == ErrorKind.INTERNAL_ERROR:
        return jsonify(result), 500
    return jsonify(result), 400


@api_bp.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint.

    Returns:
        JSON with health status
    """
    return jsonify({
        "success": True,
        "status": "healthy",
        "message": "CardLead scanning API is running",
        "version": "1.0.0"
    }), 200


@api_bp.route("/status", methods=["GET"])
def get_status():
    """Get API and pipeline status.

    Returns:
        JSON with status information
    """
    pipeline = get_pipeline()
    status = pipeline.get_status()

    return jsonify({
        "success": True,
        "data": {
            "api_status": "running",
            "pipeline_status": status,
            "api_keys_configured": Config.get_api_status()
        }
    }), 200


@api_bp.route("/scan-card", methods=["POST"])
def scan_card():
    """Scan a business card.

    Expects a JSON body with one of:
        - image: base64 image (optionally a data:image/...;base64, URL)
        - ocrText: OCR text of the card
        - frontOcrText / backOcrText: OCR text of both sides
        - images: list of up to MAX_IMAGES base64 images of the same card

    Returns:
        JSON with extracted contact details
    """
    body = _json_body()
    if body is None:
        return _invalid_body()

    pipeline = get_pipeline()

    if "images" in body:
        result = pipeline.scan_card_images(body.get("images"))
    else:
        result = pipeline.scan_card(
            image=body.get("image"),
            ocr_text=body.get("ocrText"),
            front_ocr_text=body.get("frontOcrText"),
            back_ocr_text=body.get("backOcrText"),
        )

    if result.get("success"):
        logger.info(f"Card scanned ({result['data']['processingMethod']}, confidence {result['data']['confidence']})")
    return _respond(result)


@api_bp.route("/scan-qr", methods=["POST"])
def scan_qr():
    """Classify a decoded QR payload.

    Expects:
        JSON body with 'qrText'

    Returns:
        JSON with the QR type, lead type and details or entry code
    """
    body = _json_body()
    if body is None:
        return _invalid_body()

    return _respond(get_pipeline().scan_qr(body.get("qrText")))


@api_bp.route("/compare", methods=["POST"])
def compare():
    """Compare stored lead details with freshly extracted details.

    Expects:
        JSON body with 'stored' and 'extracted' detail objects

    Returns:
        JSON with per-field rows and phones missing from the store
    """
    body = _json_body()
    if body is None:
        return _invalid_body()

    return _respond(get_pipeline().compare(body.get("stored"), body.get("extracted")))
