"""提供下單與管理儀表板使用的 API 路由。"""

from __future__ import annotations

import json
from typing import Any, Dict

from flask import Blueprint, Response, current_app, jsonify, request, session, stream_with_context

from common.errors import NotFoundError, NotReadyError, StoreUnavailableError, ValidationError
from common.models.order import SIZES
from common.services.aggregator import OrderSummary, aggregate
from common.services.change_feed import FeedEvent
from common.services.dashboard_view import DashboardView
from common.services.ledger_store import OrderDraft

from .admin import is_authenticated


api_bp = Blueprint("campus_threads_api", __name__, url_prefix="/api")

PUBLIC_ENDPOINTS = {"campus_threads_api.submit_order"}


def _components() -> Dict[str, Any]:
    return current_app.extensions["campus_threads_components"]


def _config():
    return current_app.config["STORE_CONFIG"]


def _error(message: str, code: int, **fields):
    body = {"status": "error", "message": message}
    body.update(fields)
    return jsonify(body), code


def _draft_from_request() -> OrderDraft:
    payload = request.get_json(silent=True)
    if payload is None:
        # 表單送出時尺寸欄位命名為 size_S、size_M ...
        payload = {
            "name": request.form.get("name", ""),
            "brandRequest": request.form.get("brandRequest", ""),
            "notes": request.form.get("notes", ""),
            "sizes": {s: request.form.get(f"size_{s}") for s in SIZES if f"size_{s}" in request.form},
        }
    elif not isinstance(payload, dict):
        payload = {}
    return OrderDraft.from_payload(payload)


def _sse(event: FeedEvent, summary: OrderSummary) -> str:
    body = event.to_dict()
    body["summary"] = summary.to_dict()
    data = json.dumps(body, ensure_ascii=False)
    return f"id: {event.seq}\nevent: {event.kind}\ndata: {data}\n\n"


@api_bp.before_request
def guard_admin_routes():
    if request.endpoint in PUBLIC_ENDPOINTS:
        return None
    if not is_authenticated():
        return _error("Admin login required.", 401)
    return None


@api_bp.post("/orders")
def submit_order():
    components = _components()
    draft = _draft_from_request()
    submitter_ref = components["identity"].resolve(session)
    try:
        record = components["submissions"].submit(submitter_ref, draft)
    except ValidationError as exc:
        # 保留使用者已輸入的內容，讓前端重新填回表單
        return _error(exc.message, 400, field=exc.field, draft=draft.to_dict())
    except (NotReadyError, StoreUnavailableError) as exc:
        return _error(exc.message, 503, retryable=exc.retryable, draft=draft.to_dict())

    payments = components["payments"]
    return jsonify(
        {
            "status": "ok",
            "order": record.to_dict(),
            "totalPrice": payments.total_price(record.total_items),
            "paymentLinks": [link.to_dict() for link in payments.build(record.name, record.total_items)],
        }
    ), 201


@api_bp.get("/orders")
def list_orders():
    try:
        records = _components()["store"].snapshot()
    except StoreUnavailableError as exc:
        return _error(exc.message, 503)
    summary = aggregate(records, _config().ledger.unit_price)
    return jsonify(
        {
            "status": "ok",
            "orders": [r.to_dict() for r in records],
            "summary": summary.to_dict(),
        }
    )


@api_bp.get("/orders/<order_id>")
def get_order(order_id: str):
    try:
        record = _components()["store"].get(order_id)
    except NotFoundError as exc:
        return _error(exc.message, 404)
    except StoreUnavailableError as exc:
        return _error(exc.message, 503)
    return jsonify({"status": "ok", "order": record.to_dict()})


@api_bp.post("/orders/<order_id>/paid")
def toggle_paid(order_id: str):
    payload = request.get_json(silent=True) or {}
    current_paid = payload.get("current_paid", payload.get("currentPaid"))
    if not isinstance(current_paid, bool):
        return _error("current_paid must be true or false.", 400)
    try:
        record = _components()["toggles"].toggle(order_id, current_paid)
    except NotFoundError as exc:
        return _error(exc.message, 404)
    except StoreUnavailableError as exc:
        return _error("Failed to update paid status.", 503, retryable=exc.retryable)
    return jsonify({"status": "ok", "order": record.to_dict()})


@api_bp.get("/summary")
def summary():
    try:
        records = _components()["store"].snapshot()
    except StoreUnavailableError as exc:
        return _error(exc.message, 503)
    return jsonify({"status": "ok", "summary": aggregate(records, _config().ledger.unit_price).to_dict()})


@api_bp.get("/orders/stream")
def stream_orders():
    """以 Server-Sent Events 推送訂單異動，先送出完整快照。

    每則事件都附上此連線目前畫面的統計，由 DashboardView 依事件更新。
    """

    feed = _components()["feed"]
    ledger = _config().ledger
    keepalive = ledger.feed_keepalive_seconds

    def generate():
        sub, records = feed.subscribe()
        view = DashboardView(records, unit_price=ledger.unit_price)
        view.last_seq = sub.snapshot_seq
        try:
            yield _sse(FeedEvent(seq=sub.snapshot_seq, kind="snapshot", records=records), view.summary())
            while not sub.closed:
                event = sub.get(timeout=keepalive)
                if event is None:
                    if sub.closed:
                        break
                    yield ": keep-alive\n\n"
                    continue
                view.apply(event)
                yield _sse(event, view.summary())
        finally:
            sub.close()

    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
