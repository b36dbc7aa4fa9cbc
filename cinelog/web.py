# cinelog/web.py
from flask import Blueprint, request, current_app, Response, jsonify
from cinelog.service import CineLogService, ValidationError, NotFoundError, apply_metadata
from cinelog.codec import ImportFormatError
from cinelog.listing import ALL, FilterConfig, SortConfig, SORT_FIELDS, SORT_ASC, SORT_DESC
from cinelog.stats import FRAME_ALL
import logging

logger = logging.getLogger(__name__)

bp = Blueprint("main", __name__, url_prefix="")  # blueprint name = 'main'

EXPORT_MIMETYPES = {"json": "application/json", "csv": "text/csv; charset=utf-8"}

def register_routes(app, service: CineLogService):
    """
    Register blueprint and ensure SERVICE is in app.config.
    Call this once during app creation (run.create_app does this).
    """
    if "SERVICE" not in app.config:
        app.config["SERVICE"] = service
    app.register_blueprint(bp)
    logger.debug("Registered blueprint 'main' and injected SERVICE")

def register_error_handlers(app):
    """Centralized handlers for service exceptions."""
    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        logger.warning("ValidationError: %s", e)
        return jsonify(error=str(e)), 400

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        logger.info("NotFoundError: %s", e)
        return jsonify(error=str(e)), 404

    @app.errorhandler(ImportFormatError)
    def handle_import_error(e):
        logger.warning("Import rejected: %s", e)
        return jsonify(error=str(e)), 400

# helper to get service instance
def current_service() -> CineLogService:
    return current_app.config["SERVICE"]

def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name, "")
    return int(raw) if raw.isdigit() else default

def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("expected a JSON object body")
    return data

# -----------------------
# Records
# -----------------------
@bp.route("/records")
def records():
    svc = current_service()
    filter_cfg = FilterConfig(
        search=request.args.get("q", ""),
        status=request.args.get("status") or ALL,
        date_range=request.args.get("date") or ALL,
        country=request.args.get("country") or ALL,
    )
    sort_field = request.args.get("sort", "addedAt")
    direction = request.args.get("dir", SORT_DESC)
    if sort_field not in SORT_FIELDS or direction not in (SORT_ASC, SORT_DESC):
        raise ValidationError("unsupported sort")
    per_page = _int_arg("per_page", current_app.config.get("PAGE_SIZE", 24)) or 1
    page = svc.list_records(filter_cfg, SortConfig(sort_field, direction), page=_int_arg("page", 1), per_page=per_page)
    return jsonify(
        items=[r.to_dict() for r in page.items],
        page=page.page,
        total_pages=page.total_pages,
        total=page.total,
    )

@bp.route("/records", methods=["POST"])
def record_new():
    svc = current_service()
    record = svc.add_record(_json_body())
    return jsonify(record.to_dict()), 201

@bp.route("/records/suggest")
def record_suggest():
    svc = current_service()
    return jsonify(draft=svc.suggest_from_history(request.args.get("title", "")))

@bp.route("/records/<record_id>")
def record_detail(record_id: str):
    return jsonify(current_service().get_record(record_id).to_dict())

@bp.route("/records/<record_id>", methods=["POST", "PUT"])
def record_edit(record_id: str):
    svc = current_service()
    record = svc.update_record(record_id, _json_body())
    return jsonify(record.to_dict())

@bp.route("/records/<record_id>/delete", methods=["POST"])
def record_delete(record_id: str):
    svc = current_service()
    body = request.get_json(silent=True) or {}
    svc.delete_record(record_id, confirm=bool(body.get("confirm")))
    return jsonify(deleted=1)

@bp.route("/records/bulk-delete", methods=["POST"])
def records_bulk_delete():
    svc = current_service()
    body = _json_body()
    removed = svc.bulk_delete(body.get("ids") or [], confirm=bool(body.get("confirm")))
    return jsonify(deleted=removed)

# -----------------------
# Statistics & selector options
# -----------------------
@bp.route("/stats")
def stats():
    svc = current_service()
    result = svc.stats(request.args.get("frame", FRAME_ALL), request.args.get("year"), request.args.get("month"))
    return jsonify(result.to_dict())

@bp.route("/options")
def options():
    return jsonify(current_service().options())

# -----------------------
# Import / Export endpoints
# -----------------------
@bp.route("/export")
def export_records():
    svc = current_service()
    fmt = request.args.get("format", "json").lower()
    content, filename = svc.export(fmt)
    return Response(content.encode("utf-8"), mimetype=EXPORT_MIMETYPES[fmt],
                    headers={"Content-Disposition": f"attachment; filename={filename}"})

@bp.route("/import", methods=["POST"])
def import_records():
    svc = current_service()
    file = request.files.get("file")
    if not file:
        raise ValidationError("no file uploaded")
    try:
        text = file.read().decode("utf-8")
    except UnicodeDecodeError as e:
        raise ImportFormatError(f"file is not UTF-8 text: {e}")
    result = svc.import_file(file.filename or "", text)
    return jsonify(imported=result.imported, skipped=result.skipped, message=result.message)

# -----------------------
# AI helpers
# -----------------------
@bp.route("/ai/metadata", methods=["POST"])
def ai_metadata():
    svc = current_service()
    body = _json_body()
    draft = body.get("draft") or {}
    title = body.get("title") or draft.get("title", "")
    meta = svc.fetch_metadata(title)
    duplicate = svc.find_duplicate_title(meta.title, exclude_id=draft.get("id")) if meta else None
    return jsonify(
        found=meta is not None,
        duplicate_id=duplicate.id if duplicate else None,
        draft=apply_metadata(draft, meta, is_new=not draft.get("id")),
        summary=meta.summary if meta else None,
    )

@bp.route("/ai/review", methods=["POST"])
def ai_review():
    svc = current_service()
    body = _json_body()
    review = svc.generate_review(body.get("title", ""), body.get("rating", 0), body.get("mediaType", "movie"))
    return jsonify(review=review)
