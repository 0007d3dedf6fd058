"""Campus Threads 限量 T 恤訂單系統 Flask 應用。"""

from __future__ import annotations

import logging
from typing import Optional

from flask import Flask

from common.db.session import build_engine, build_session_factory, init_db
from common.services.change_feed import ChangeFeed
from common.services.ledger_store import LedgerStore
from common.services.logging import set_level
from common.services.submission_service import SubmissionService
from common.services.toggle_service import ToggleService
from config import StoreFrontConfig
from routes import admin, api, user
from services import PaymentLinkBuilder, SessionIdentityProvider


def create_app(config: Optional[StoreFrontConfig] = None) -> Flask:
    config = config or StoreFrontConfig.load()
    logging.basicConfig(level=config.ledger.log_level)
    set_level(config.ledger.log_level)

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.secret_key
    app.config["STORE_CONFIG"] = config

    engine = build_engine(config.ledger.database_url)
    init_db(engine)
    store = LedgerStore(build_session_factory(engine))
    feed = ChangeFeed(store, buffer_size=config.ledger.feed_buffer_size)

    components = {
        "engine": engine,
        "store": store,
        "feed": feed,
        "submissions": SubmissionService(store),
        "toggles": ToggleService(store),
        "identity": SessionIdentityProvider(enabled=config.identity_enabled),
        "payments": PaymentLinkBuilder(config.ledger.unit_price, config.ledger.cashapp_cashtag),
    }
    app.extensions["campus_threads_components"] = components

    app.register_blueprint(user.user_bp)
    app.register_blueprint(admin.admin_bp)
    app.register_blueprint(api.api_bp)

    return app


def main() -> None:
    app = create_app()
    app.run(host="0.0.0.0", port=5000, debug=False, threaded=True)


if __name__ == "__main__":
    main()
