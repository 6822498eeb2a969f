from flask import Blueprint, jsonify, request

from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
def dashboard_report():
    limit = request.args.get("limit", default=reporting_service.RECENT_SALES_LIMIT, type=int)
    if limit < 0:
        return jsonify({"error": "limit must be >= 0"}), 400
    return jsonify(reporting_service.dashboard(recent_limit=limit)), 200
