# app.py
import base64
import io
import logging
import platform
import sys
import time
import traceback
from datetime import datetime
from pathlib import Path

from flask import Flask, abort, jsonify, request, send_file
from sqlalchemy import select
from werkzeug.exceptions import HTTPException

import component_library
from config import Config
from image_service import process_image
from invoice import ImageSet, Invoice, LineItem
from models import Base, InvoiceTemplate, make_engine, make_session_factory, save_template
from pdf_service import DocumentGenerator, generate_simple_pdf

logger = logging.getLogger(__name__)


# -----------------------------
# Helpers
# -----------------------------
def _configure_logging(level_name: str):
    root = logging.getLogger()
    if not root.handlers:
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter("%(levelname)s %(name)s %(message)s"))
        root.addHandler(h)
    root.setLevel(getattr(logging, (level_name or "INFO").upper(), logging.INFO))


def _ensure_dirs(db_url: str):
    # SQLite file lives under instance/ by default; the folder must exist before connect
    if db_url.startswith("sqlite:///"):
        Path(db_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)


def _pdf_response(pdf_bytes: bytes, filename: str):
    return send_file(
        io.BytesIO(pdf_bytes),
        as_attachment=True,
        download_name=filename,
        mimetype="application/pdf",
    )


def _error_body(error: str, exc: Exception, **extra) -> dict:
    body = {"error": error, "message": str(exc) or exc.__class__.__name__}
    body.update(extra)
    if not Config.is_production():
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


# -----------------------------
# App factory
# -----------------------------
def create_app(config_overrides: dict | None = None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    _configure_logging(app.config.get("LOG_LEVEL", "INFO"))
    _ensure_dirs(app.config["SQLALCHEMY_DATABASE_URI"])

    engine = make_engine(app.config["SQLALCHEMY_DATABASE_URI"], echo=app.config.get("SQLALCHEMY_ECHO", False))
    Base.metadata.create_all(engine)
    SessionLocal = make_session_factory(engine)

    def db_session():
        return SessionLocal()

    generator = DocumentGenerator()
    started = time.monotonic()

    # -----------------------------
    # PDF generation
    # -----------------------------
    @app.route("/api/generate-pdf", methods=["POST"])
    def generate_pdf():
        body = request.get_json(silent=True)
        if not body:
            logger.info("Empty request body, generating simple PDF")
            return _pdf_response(generate_simple_pdf(), "simple-invoice.pdf")

        try:
            invoice = Invoice.from_payload(body)
            pdf_bytes = generator.generate(invoice)
            return _pdf_response(pdf_bytes, "invoice-template.pdf")
        except Exception as e:
            logger.exception("PDF generation error")
            try:
                logger.info("Attempting fallback simple PDF generation")
                return _pdf_response(generate_simple_pdf(), "simple-invoice.pdf")
            except Exception as fallback_error:
                logger.exception("Fallback PDF generation also failed")
                body = _error_body(
                    "Failed to generate PDF",
                    e,
                    details=str(e),
                    fallbackError=str(fallback_error),
                )
                return jsonify(body), 500

    @app.route("/api/test-pdf")
    def test_pdf():
        return _pdf_response(generate_simple_pdf(), "simple-invoice.pdf")

    # -----------------------------
    # Images
    # -----------------------------
    @app.route("/api/process-image", methods=["POST"])
    def process_image_route():
        body = request.get_json(silent=True) or {}
        image_data = body.get("imageData")
        if not image_data:
            return jsonify({"success": False, "error": "No image data provided"}), 400

        result = process_image(image_data, str(body.get("imageType") or ""))
        return jsonify(result), (200 if result["success"] else 400)

    @app.route("/api/test-image-embed", methods=["POST"])
    def test_image_embed():
        body = request.get_json(silent=True) or {}
        image_data = body.get("imageData")
        if not image_data:
            return jsonify({"success": False, "error": "No image data provided"}), 400

        try:
            invoice = Invoice(
                invoice_number="TEST-001",
                company_details="Test Company",
                items=(LineItem(description="Test Item", quantity=1, price=100),),
                images=ImageSet(logo=image_data),
            )
            pdf_bytes = generator.generate(invoice)
        except Exception as e:
            logger.exception("Error testing image embed")
            return jsonify({"success": False, "message": "Error testing image embed", "error": str(e)}), 500

        return jsonify({
            "success": True,
            "message": "Image embedded successfully",
            "pdfBase64": base64.b64encode(pdf_bytes).decode("ascii"),
        })

    @app.route("/api/debug-images", methods=["POST"])
    def debug_images():
        body = request.get_json(silent=True) or {}
        nested = body.get("images") if isinstance(body.get("images"), dict) else {}
        result = {}
        for key in ImageSet.SLOTS.values():
            data = nested.get(key) or body.get(key)
            result[key] = f"Received (length: {len(data)})" if isinstance(data, str) and data else "Not received"
        return jsonify(result)

    @app.route("/api/debug", methods=["GET", "POST", "PUT", "DELETE"])
    def debug_server():
        info = {
            "timestamp": datetime.utcnow().isoformat(),
            "pythonVersion": platform.python_version(),
            "platform": sys.platform,
            "uptime": round(time.monotonic() - started, 3),
            "environment": Config.APP_ENV,
            "requestMethod": request.method,
            "requestUrl": request.full_path.rstrip("?"),
            "requestHeaders": dict(request.headers),
            "requestBody": request.get_json(silent=True),
        }
        logger.debug("Server debug info: %s", info)
        return jsonify({"success": True, "debug": info, "message": "Server is running correctly"})

    # -----------------------------
    # Component library
    # -----------------------------
    @app.route("/api/components")
    def components():
        return jsonify(component_library.to_dict())

    # -----------------------------
    # Saved templates
    # -----------------------------
    @app.route("/api/templates", methods=["GET"])
    def templates_list():
        with db_session() as s:
            rows = s.execute(select(InvoiceTemplate).order_by(InvoiceTemplate.name.asc())).scalars().all()
            return jsonify([r.summary() for r in rows])

    @app.route("/api/templates", methods=["POST"])
    def templates_save():
        body = request.get_json(silent=True) or {}
        name = str(body.get("name") or "").strip()
        payload = body.get("payload")
        if not name:
            return jsonify({"error": "Template name is required"}), 400
        if not isinstance(payload, dict):
            return jsonify({"error": "Template payload must be an object"}), 400

        with db_session() as s:
            row = save_template(s, name, payload)
            s.commit()
            return jsonify({"id": row.id, "name": row.name}), 201

    def _template_or_404(s, template_id: int) -> InvoiceTemplate:
        row = s.get(InvoiceTemplate, template_id)
        if not row:
            abort(404)
        return row

    @app.route("/api/templates/<int:template_id>", methods=["GET"])
    def templates_get(template_id: int):
        with db_session() as s:
            row = _template_or_404(s, template_id)
            return jsonify(dict(row.summary(), payload=row.payload))

    @app.route("/api/templates/<int:template_id>", methods=["DELETE"])
    def templates_delete(template_id: int):
        with db_session() as s:
            row = _template_or_404(s, template_id)
            s.delete(row)
            s.commit()
        return jsonify({"success": True})

    @app.route("/api/templates/<int:template_id>/pdf")
    def templates_pdf(template_id: int):
        with db_session() as s:
            payload = _template_or_404(s, template_id).payload
        pdf_bytes = generator.generate(Invoice.from_payload(payload))
        return _pdf_response(pdf_bytes, f"template-{template_id}.pdf")

    # -----------------------------
    # Health
    # -----------------------------
    @app.route("/api/health")
    def health():
        return jsonify({"success": True, "timestamp": datetime.utcnow().isoformat()})

    # -----------------------------
    # Errors
    # -----------------------------
    @app.errorhandler(Exception)
    def handle_error(e):
        if isinstance(e, HTTPException):
            return jsonify({"error": e.name, "message": e.description}), e.code
        logger.exception("Server Error")
        return jsonify(_error_body("Internal Server Error", e)), 500

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(debug=not Config.is_production())
