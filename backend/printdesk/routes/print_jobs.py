# Overview: Flask API routes for print job submission, quotes, previews, and cancellation.

# backend/printdesk/routes/print_jobs.py
"""
Print Job API Routes

FLOW:
- POST /upload            ingest a file, return its fileReference
- POST /quote             price a page selection without creating anything
- POST /                  create an order (multipart with file, or JSON with fileReference)
- GET  /preview/<token>   file URL for the preview UI
- DELETE /<token>         cancel within the cancellation window

Submitted counts and price are checked against the pricing engine; the
stored price is always the server-computed one.
"""

from flask import Blueprint, current_app, jsonify, request, url_for

from ..errors import ValidationError
from ..schemas import PrintOptions
from ..services import order_service, pricing_service
from ..services.ingestion_service import ingest
from ..services.pricing_service import PricingError
from ..time_utils import to_utc_z
from ..validation import json_body, maybe_json, page_ids, request_fields, require_int, require_str


print_jobs_bp = Blueprint("print_jobs", __name__, url_prefix="/api/print-job")


def _uploaded_file():
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise ValidationError("No file uploaded", fields={"file": "required"})
    return upload


def _order_fields(data: dict) -> dict:
    roll_number = require_str(data, "rollNumber")
    return {
        "roll_number": roll_number,
        "print_options": PrintOptions.from_payload(maybe_json(data.get("printOptions"), "printOptions")),
        "total_pages": require_int(data, "totalPages", minimum=1),
        "color_pages": require_int(data, "colorPages", minimum=0),
        "bw_pages": require_int(data, "bwPages", minimum=0),
        "price": require_str(data, "price"),
        "selected_pages": page_ids(data.get("selectedPages")),
        "actor": f"customer:{roll_number}",
        "ip_address": request.remote_addr,
    }


def _created(order):
    return jsonify({
        "success": True,
        "order": {
            "id": order.id,
            "token": order.token,
            "rollNumber": order.roll_number,
            "totalPages": order.total_pages,
            "colorPages": order.color_pages,
            "bwPages": order.bw_pages,
            "price": float(order.price_decimal),
            "createdAt": to_utc_z(order.created_at),
        },
    }), 201


@print_jobs_bp.post("/upload")
def upload_route():
    """
    Ingest one file (multipart field "file").

    Returns:
        201: {"fileReference": {...}}
        400/413/503: ingestion rejected the file
    """
    upload = _uploaded_file()
    file_ref = ingest(upload.read(), upload.filename, upload.mimetype)
    return jsonify({"success": True, "fileReference": file_ref.to_dict()}), 201


@print_jobs_bp.post("/quote")
def quote_route():
    data = json_body()
    options = PrintOptions.from_payload(data.get("printOptions"))
    selected = page_ids(data.get("selectedPages"))
    try:
        if selected is not None:
            breakdown = pricing_service.quote(selected, options)
        else:
            page_count = require_int(data, "pageCount", minimum=0)
            breakdown = pricing_service.price_page_count(page_count, color=options.color, copies=options.copies)
    except PricingError as exc:
        raise ValidationError(str(exc))
    return jsonify({"success": True, "quote": breakdown.to_dict()}), 200


@print_jobs_bp.post("")
@print_jobs_bp.post("/")
def create_print_job_route():
    """
    Create an order.

    multipart/form-data: file + rollNumber, totalPages, colorPages, bwPages,
    price, printOptions (JSON string), selectedPages (optional JSON list).
    application/json: the same fields plus fileReference (a key returned by
    /upload) and optional fileName.

    Returns:
        201: order created
        400: validation or ingestion failure
        413: file too large
    """
    data = request_fields()

    if request.files:
        upload = _uploaded_file()
        fields = _order_fields(data)
        order = order_service.create_order_from_upload(
            data=upload.read(),
            original_name=upload.filename,
            mime_type=upload.mimetype,
            **fields,
        )
        return _created(order)

    reference = data.get("fileReference")
    if isinstance(reference, dict):
        reference = reference.get("key")
    if not reference:
        raise ValidationError("No file uploaded", fields={"file": "required"})

    fields = _order_fields(data)
    order = order_service.create_order_from_reference(str(reference), file_name=data.get("fileName"), **fields)
    return _created(order)


@print_jobs_bp.get("/preview/<token>")
def preview_route(token):
    order = order_service.get_order_by_token(token)
    preview_url = url_for("files.serve_file_route", key=order.file_reference, _external=True)
    return jsonify({"success": True, "previewUrl": preview_url}), 200


@print_jobs_bp.delete("/<token>")
def cancel_route(token):
    snapshot = order_service.cancel_order(token, actor="customer", ip_address=request.remote_addr)
    current_app.logger.info("Order %s cancelled via API", snapshot.token)
    return jsonify({"success": True, "message": "Order cancelled successfully"}), 200
