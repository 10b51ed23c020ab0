# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/checkout/routes/sales.py
"""Sale transaction API routes"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import InvalidRequestError, SaleError
from ..services import approval_service, client_service, reporting_service, sales_service
from ..services.sales_service import SaleFilter
from ..validation import optional_int, optional_str, parse_payment_patch, parse_sale_input


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _error_response(e: SaleError):
    return jsonify(e.to_dict()), e.http_status


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    return data


@sales_bp.post("/")
def create_sale_route():
    """
    Ring up a sale.

    Body: cash_register_id, total_amount_cents, amount_cancelled_cents,
    lines [{stock_id, quantity, unit_price_cents}], payments
    [{payment_method_id, amount_cancelled_cents}], optional user_id /
    client_name / client_dni / status / currency / expired_at.
    """
    try:
        data = parse_sale_input(_json_body())
        sale = sales_service.create_sale(data)
        return jsonify({"sale": sale.to_dict()}), 201

    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/")
def list_sales_route():
    """Paginated sale search (user_id, business_id, branch_id, status, search, date range)."""
    try:
        args = request.args
        criteria = SaleFilter(
            user_id=optional_int(args, "user_id", minimum=1),
            business_id=optional_int(args, "business_id", minimum=1),
            branch_id=optional_int(args, "branch_id", minimum=1),
            status=optional_str(args, "status", max_length=16),
            search=optional_str(args, "search"),
            date_field=args.get("date_field", "created_at"),
            start=args.get("start"),
            end=args.get("end"),
            page=optional_int(args, "page", minimum=1) or 1,
            page_size=min(optional_int(args, "page_size", minimum=1) or 10, 100),
        )
        result = sales_service.list_sales(criteria)
        result["data"] = [sale.to_dict(include_lines=False) for sale in result["data"]]
        return jsonify(result), 200

    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    """Get sale with lines and payment splits."""
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleError as e:
        return _error_response(e)


@sales_bp.put("/<int:sale_id>")
def update_sale_route(sale_id: int):
    """
    Reconcile a sale with new lines and amounts.

    Lines carrying an "id" adjust the stored line by the quantity difference;
    lines without one are added. status "unprocessed" leaves payments alone.
    """
    try:
        data = parse_sale_input(_json_body(), for_update=True)
        sale = sales_service.update_sale(sale_id, data)
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.patch("/<int:sale_id>")
def patch_sale_payment_route(sale_id: int):
    """Record payment completion: replaces payment splits and amount cancelled."""
    try:
        data = parse_payment_patch(_json_body())
        sale = sales_service.patch_sale_payment(sale_id, data)
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record sale payment")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/approve")
def approve_sale_route(sale_id: int):
    """
    Set or clear client approval.

    Body: {"approve": bool, "user_id": requesting user (optional)}
    """
    try:
        data = _json_body()
        approve = data.get("approve", True)
        if not isinstance(approve, bool):
            raise InvalidRequestError("approve must be a boolean")
        sale = approval_service.approve_sale(optional_int(data, "user_id", minimum=1), sale_id, approve)
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to approve sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/summary")
def sale_summary_route():
    """Counts and amounts by status for ?business_id=, ?branch_id= or ?user_id=."""
    try:
        args = request.args
        summary = reporting_service.sale_summary(
            business_id=optional_int(args, "business_id", minimum=1),
            branch_id=optional_int(args, "branch_id", minimum=1),
            user_id=optional_int(args, "user_id", minimum=1),
        )
        return jsonify({"summary": summary}), 200

    except SaleError as e:
        return _error_response(e)


@sales_bp.get("/last-purchase")
def last_purchase_route():
    try:
        sale = reporting_service.last_purchase_for_user(optional_int(request.args, "user_id", minimum=1))
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleError as e:
        return _error_response(e)


@sales_bp.get("/last-sale")
def last_sale_route():
    try:
        sale = reporting_service.last_sale_for_scope(
            business_id=optional_int(request.args, "business_id", minimum=1),
            branch_id=optional_int(request.args, "branch_id", minimum=1),
        )
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleError as e:
        return _error_response(e)


@sales_bp.post("/link-client")
def link_client_route():
    """Attach walk-in sales recorded under a DNI to a registered user."""
    try:
        data = _json_body()
        client_dni = optional_str(data, "client_dni", max_length=64)
        user_id = optional_int(data, "user_id", minimum=1)
        if not client_dni or not user_id:
            raise InvalidRequestError("client_dni and user_id are required")

        result = client_service.link_walk_in_sales(client_dni, user_id)
        return jsonify(result), 200

    except SaleError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to link walk-in sales")
        return jsonify({"error": "Internal server error"}), 500
