"""使用者前台路由（商品資訊與健康檢查）。"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from common.errors import StoreUnavailableError
from common.models.order import SIZES


user_bp = Blueprint("campus_threads_user", __name__)


def _components() -> dict:
    return current_app.extensions["campus_threads_components"]


@user_bp.get("/")
def storefront():
    ledger = current_app.config["STORE_CONFIG"].ledger
    return jsonify(
        {
            "product": ledger.product_name,
            "unitPrice": ledger.unit_price,
            "currency": ledger.currency,
            "sizes": list(SIZES),
        }
    )


@user_bp.get("/health")
def health():
    components = _components()
    try:
        orders = components["store"].count()
    except StoreUnavailableError as exc:
        return jsonify({"status": "error", "message": exc.message}), 503
    return jsonify(
        {
            "status": "ok",
            "orders": orders,
            "subscribers": components["feed"].subscriber_count,
        }
    )
