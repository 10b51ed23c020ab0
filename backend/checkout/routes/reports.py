# Overview: Flask API routes for reports; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..errors import SaleError
from ..models.aggregates import LEDGER_SALES
from ..services import reporting_service
from ..time_utils import utcnow
from ..validation import optional_int


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/category-totals")
def category_totals_route():
    """
    Monthly category totals for a year.

    Query: ledger=SALES&branch_id=... or ledger=PURCHASES&user_id=...; year
    defaults to the current one.
    """
    try:
        args = request.args
        year = optional_int(args, "year", minimum=1) or utcnow().year
        ledger = (args.get("ledger") or LEDGER_SALES).upper()
        months = reporting_service.category_totals_for_year(
            ledger,
            year,
            business_id=optional_int(args, "business_id", minimum=1),
            branch_id=optional_int(args, "branch_id", minimum=1),
            user_id=optional_int(args, "user_id", minimum=1),
        )
        return jsonify({"ledger": ledger, "year": year, "months": months}), 200

    except SaleError as e:
        return jsonify(e.to_dict()), e.http_status
