# controllers/payments.py
from __future__ import annotations
from decimal import Decimal, InvalidOperation

from flask import Blueprint, abort, jsonify, redirect, request
from flask_login import current_user, login_required

from models.audit_store import audit
from models.payments_store import create_payment, get_payment
from services.metrics import CHECKOUT_ATTEMPTS, WEBHOOK_EVENTS
from services.payments.registry import get_gateway, get_gateway_for_endpoint

payments_bp = Blueprint("payments", __name__)


def _status_payload(payment: dict) -> dict:
    return {
        "id": payment["id"],
        "status": payment["status"],
        "amount": str(payment["amount"]),
        "currency": payment["currency"],
        "gateway": payment["gateway"],
    }


def _load_own_payment(payment_id: int) -> dict:
    payment = get_payment(payment_id)
    if not (current_user.is_admin or payment["username"] == current_user.username):
        abort(403)
    return payment


@payments_bp.post("/payments")
@login_required
def create():
    payload = request.get_json(force=True, silent=True) or {}
    driver = payload.get("gateway") or "MercadoPagoGateway"
    try:
        amount = Decimal(str(payload["amount"]))
    except (KeyError, InvalidOperation):
        return jsonify({"error": "amount must be numeric"}), 400
    if not amount.is_finite() or amount <= 0:
        return jsonify({"error": "amount must be > 0"}), 400

    get_gateway(driver)  # unknown driver -> 404
    pid = create_payment(current_user.username, driver, amount,
                         description=str(payload.get("description") or ""),
                         currency=str(payload.get("currency") or "USD"))
    return jsonify(_status_payload(get_payment(pid))), 201


# ----- payer starts a checkout for a payment -----

@payments_bp.route("/payments/<int:payment_id>/checkout", methods=["GET", "POST"])
@login_required
def start_checkout(payment_id: int):
    payment = _load_own_payment(payment_id)
    if payment["status"] == "completed":
        return jsonify(_status_payload(payment)), 409

    gateway = get_gateway(payment["gateway"])
    result = gateway.initiate_checkout(payment)
    CHECKOUT_ATTEMPTS.labels(gateway=gateway.driver,
                             outcome="redirect" if result.ok else "failed").inc()
    audit("payment.checkout", target_type="payment", target_id=payment_id,
          outcome="success" if result.ok else "failure",
          status=302 if result.ok else 502,
          extra={"gateway": gateway.driver, "reason": result.reason})

    if not result.ok:
        # processor detail stays in the gateway log
        return jsonify({"error": "Payment could not be initiated"}), 502
    return redirect(result.redirect_url)


# ----- back URLs the processor sends the payer to -----

@payments_bp.get("/payments/<int:payment_id>/success")
@login_required
def success(payment_id: int):
    return jsonify(_status_payload(_load_own_payment(payment_id)))


@payments_bp.get("/payments/<int:payment_id>/cancel")
@login_required
def cancel(payment_id: int):
    return jsonify(_status_payload(_load_own_payment(payment_id)))


# ----- processor notification (no auth, secret-verified) -----

def _notification_params(payment: str) -> dict:
    """
    Merge JSON body, form and query string into one flat mapping.
    Query string wins: it carries what we put into notification_url.
    """
    params: dict = {}
    body = request.get_json(silent=True)
    if isinstance(body, dict):
        params.update(body)
    params.update(request.form.to_dict())
    params.update(request.args.to_dict())

    if not params.get("data_id"):
        data = params.get("data")
        if params.get("data.id"):
            params["data_id"] = params["data.id"]
        elif isinstance(data, dict) and data.get("id"):
            params["data_id"] = str(data["id"])
    params["payment"] = payment
    return params


@payments_bp.route("/payments/return/<gateway>/<payment>", methods=["GET", "POST"])
def gateway_return(gateway: str, payment: str):
    """
    Generic gateway return endpoint; the adapter runs the validation pipeline.
    This route must be CSRF-exempt in app.py.
    """
    gw = get_gateway_for_endpoint(gateway)
    result = gw.handle_callback(_notification_params(payment))
    WEBHOOK_EVENTS.labels(gateway=gw.driver, outcome=result.outcome).inc()
    return jsonify(result.body()), result.status_code
