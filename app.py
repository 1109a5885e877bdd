"""
Freight Baseline API: JSON endpoints over the extraction pipeline.

A thin pass-through: handlers decode the request, call ``BaselinePipeline``
and translate the result (or error) into JSON with an HTTP status.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional, Tuple

from flask import Flask, Response, request
from werkzeug.exceptions import HTTPException

from freight_baseline import __version__
from freight_baseline.config import MappingStoreConfig, PipelineConfig
from freight_baseline.mapping_store import MappingStoreError
from freight_baseline.pipeline import BaselinePipeline
from freight_baseline.report_builder import ReportBuilder
from freight_baseline.schema import FileStatus

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {"csv", "txt", "tsv", "xlsx", "xlsm"}

JsonResponse = Tuple[Dict[str, Any], int]


def allowed_file(filename: str) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def error(message: str, status: int = 400, **extra: Any) -> JsonResponse:
    return {"success": False, "error": message, **extra}, status


def default_pipeline() -> BaselinePipeline:
    return BaselinePipeline(
        PipelineConfig(
            store=MappingStoreConfig(database_url=os.environ.get("DATABASE_URL")),
            log_level=logging.INFO,
        )
    )


def create_app(pipeline: Optional[BaselinePipeline] = None) -> Flask:
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = 32 * 1024 * 1024
    pipe = pipeline or default_pipeline()
    app.extensions["baseline_pipeline"] = pipe

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return error(exc.description or exc.name, exc.code or 500)

    # -------------------------------------------------------
    # Extraction
    # -------------------------------------------------------

    @app.route("/api/extract", methods=["POST"])
    def api_extract():
        """Multipart ``file`` upload, or JSON with ``content_base64``."""
        if "file" in request.files:
            upload = request.files["file"]
            if not upload.filename:
                return error("No file selected")
            file_name = upload.filename
            content: Any = upload.read()
            vendor_type = request.form.get("vendor_type")
            scope_key = request.form.get("scope_key")
        else:
            body = request.get_json(silent=True) or {}
            file_name = body.get("file_name") or ""
            content = body.get("content_base64")
            vendor_type = body.get("vendor_type")
            scope_key = body.get("scope_key")
            if not file_name or not content:
                return error("Provide a multipart 'file' or JSON 'file_name' and 'content_base64'")

        if not allowed_file(file_name):
            return error(f"Invalid file type. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}")

        try:
            result = pipe.extract_file(file_name, content, vendor_type, scope_key)
        except Exception as exc:
            logger.exception("Extraction failed for %s", file_name)
            return error(str(exc), 500)

        if result.status is FileStatus.ERROR:
            return error(result.error_message or "Unreadable workbook", 400, result=result.to_dict())
        return {"success": True, "result": result.to_dict()}, 200

    @app.route("/api/inspect", methods=["POST"])
    def api_inspect():
        if "file" not in request.files or not request.files["file"].filename:
            return error("No file uploaded")
        upload = request.files["file"]
        try:
            tabs = pipe.inspect_workbook(upload.filename, upload.read())
        except ValueError as exc:
            return error(str(exc))
        return {"success": True, "tabs": [t.to_dict() for t in tabs]}, 200

    @app.route("/api/files", methods=["GET"])
    def api_files():
        status = request.args.get("status")
        try:
            results = pipe.stored_results(status)
        except ValueError:
            return error(f"Unknown status {status!r}")
        return {"success": True, "files": [r.to_dict() for r in results]}, 200

    @app.route("/api/files/export", methods=["GET"])
    def api_files_export():
        csv_text = ReportBuilder.tabs_to_csv(pipe.stored_results())
        return Response(
            csv_text,
            mimetype="text/csv",
            headers={"Content-Disposition": "attachment; filename=extraction_audit.csv"},
        )

    # -------------------------------------------------------
    # Baseline
    # -------------------------------------------------------

    @app.route("/api/baseline", methods=["GET"])
    def api_baseline():
        summary = pipe.build_baseline()
        data = summary.to_dict()
        data["formatted"] = {
            key: ReportBuilder.format_currency(data[key])
            for key in (
                "ups_parcel_costs", "tl_freight_costs", "rl_ltl_costs",
                "general_costs", "total_verified",
            )
        }
        return {"success": True, "baseline": data}, 200

    # -------------------------------------------------------
    # Header mappings
    # -------------------------------------------------------

    @app.route("/api/mappings/resolve", methods=["POST"])
    def api_resolve_post():
        body = request.get_json(silent=True) or {}
        headers = body.get("headers")
        if not isinstance(headers, list) or not headers:
            return error("Missing 'headers' list")
        resolutions = pipe.resolve_headers(body.get("scope_key"), [str(h) for h in headers])
        return {
            "success": True,
            "mappings": {h: r.to_dict() for h, r in resolutions.items()},
        }, 200

    @app.route("/api/mappings/resolve", methods=["GET"])
    def api_resolve_get():
        header = request.args.get("header")
        if not header:
            return error("Missing 'header' parameter")
        try:
            stored = pipe.lookup_mapping(request.args.get("scope_key"), header)
        except MappingStoreError as exc:
            return error(str(exc), 500)
        return {
            "success": True,
            "header": header,
            "stored": stored.to_dict(),
            "suggestion": pipe.suggest(header).to_dict(),
        }, 200

    @app.route("/api/mappings/confirm", methods=["POST"])
    def api_confirm():
        body = request.get_json(silent=True) or {}
        scope_key = body.get("scope_key")
        confirmations = body.get("confirmations")
        if not scope_key or not isinstance(confirmations, list) or not confirmations:
            return error("Missing 'scope_key' or 'confirmations'")
        report = pipe.confirm_mappings(scope_key, confirmations)
        return {"success": True, **report.to_dict()}, 200

    @app.route("/api/mappings", methods=["GET"])
    def api_mappings():
        scope_key = request.args.get("scope_key")
        if not scope_key:
            return error("Missing 'scope_key' parameter")
        try:
            records = pipe.mapping_store.customer_mappings(scope_key)
            stats = pipe.mapping_stats(scope_key)
        except MappingStoreError as exc:
            return error(str(exc), 500)
        return {
            "success": True,
            "mappings": [r.to_dict() for r in records],
            "stats": stats,
        }, 200

    # -------------------------------------------------------
    # Health
    # -------------------------------------------------------

    @app.route("/api/health", methods=["GET"])
    def api_health():
        database = pipe.file_store.ping()
        return {
            "status": "online" if database else "degraded",
            "version": __version__,
            "database": database,
        }, 200

    return app


app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", "5000")))
