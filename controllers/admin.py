# controllers/admin.py
from flask import Blueprint, jsonify, request
from flask_login import login_required

from controllers.auth import admin_required
from models.audit_store import audit, list_audit, verify_chain
from models.gateway_log_store import list_gateway_logs
from models.gateways_store import get_gateway as get_gateway_row, list_gateways, update_gateway_config
from services.payments.config import GatewayConfig, GatewayConfigError
from services.payments.registry import drivers, get_gateway

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

_SECRET_KEYS = {"access_token"}


def _masked(config: dict) -> dict:
    out = {}
    for k, v in config.items():
        if k in _SECRET_KEYS and v:
            out[k] = "*" * 8 + v[-4:]
        else:
            out[k] = v
    return out


@admin_bp.get("/gateways")
@login_required
@admin_required
def gateways():
    descriptors = drivers()
    return jsonify([
        {
            "driver": g["driver"],
            "name": g["name"],
            "endpoint": g["endpoint"],
            "is_active": g["is_active"],
            "descriptor": descriptors.get(g["driver"]),
        }
        for g in list_gateways()
    ])


@admin_bp.get("/gateways/<driver>/config")
@login_required
@admin_required
def gateway_config(driver: str):
    gateway = get_gateway(driver)
    defaults = gateway.get_config_merge()
    row = get_gateway_row(driver)
    config = dict(defaults)
    config.update(row["config"])
    return jsonify({"driver": driver, "config": _masked(config)})


@admin_bp.post("/gateways/<driver>/config")
@login_required
@admin_required
def update_config(driver: str):
    gateway = get_gateway(driver)
    allowed = set(gateway.get_config_merge())
    payload = request.get_json(force=True, silent=True) or {}
    if not isinstance(payload, dict) or not payload:
        return jsonify({"error": "expected a JSON object of config keys"}), 400

    unknown = sorted(set(payload) - allowed)
    if unknown:
        return jsonify({"error": f"unknown config keys: {', '.join(unknown)}"}), 400

    values = {k: "" if v is None else str(v) for k, v in payload.items()}
    merged = dict(get_gateway_row(driver)["config"])
    merged.update(values)
    try:
        GatewayConfig.from_mapping(merged)
    except GatewayConfigError as e:
        return jsonify({"error": str(e)}), 400

    row = update_gateway_config(driver, values)
    audit("gateway.config.update", target_type="gateway", target_id=driver,
          outcome="success", status=200, extra={"keys": sorted(values)})
    return jsonify({"ok": True, "driver": driver, "config": _masked(row["config"])})


@admin_bp.get("/gateway-logs")
@login_required
@admin_required
def gateway_logs():
    tag = request.args.get("tag")
    payment_id = request.args.get("payment_id", type=int)
    return jsonify(list_gateway_logs(tag=tag, payment_id=payment_id))


@admin_bp.get("/audit")
@login_required
@admin_required
def audit_list():
    return jsonify(list_audit(limit=request.args.get("limit", 500, type=int)))


@admin_bp.get("/audit/verify")
@login_required
@admin_required
def audit_verify():
    return jsonify(verify_chain())
