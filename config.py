"""商店前台應用設定模組。"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from common.config import LedgerConfig, load_env
from common.services.logging import log_event


@dataclass
class StoreFrontConfig:
    """封裝訂單系統的設定值。"""

    secret_key: str
    admin_password: str
    identity_enabled: bool
    data_dir: Path
    ledger: LedgerConfig

    @property
    def settings_file(self) -> Path:
        return self.data_dir / "settings.json"

    @property
    def admin_credentials_file(self) -> Path:
        return self.data_dir / "admin.json"

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "StoreFrontConfig":
        """從環境變數與 data 目錄建構設定，並確保必要目錄存在。"""

        data_dir = Path(data_dir or os.environ.get("STORE_DATA_DIR") or Path(__file__).resolve().parent / "data")
        data_dir.mkdir(parents=True, exist_ok=True)

        ledger = load_env(
            settings_path=data_dir / "settings.json",
            default_database_url=f"sqlite:///{(data_dir / 'orders.db').as_posix()}",
        )
        config = cls(
            secret_key=os.environ.get("SECRET_KEY", "campus-threads-dev"),
            admin_password=os.environ.get("ADMIN_PASSWORD", "admin123"),
            identity_enabled=os.environ.get("IDENTITY_ENABLED", "1").strip().lower() not in {"0", "false", "no"},
            data_dir=data_dir,
            ledger=ledger,
        )

        # 如果存在 admin.json，從檔案讀取管理員密碼（優先於環境變數）
        if config.admin_credentials_file.exists():
            try:
                admin_data = json.loads(config.admin_credentials_file.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                log_event("warning", "config.admin_file_unreadable", path=str(config.admin_credentials_file), error=str(exc))
            else:
                if isinstance(admin_data, dict) and admin_data.get("password"):
                    config.admin_password = str(admin_data["password"])
                    log_event("info", "config.admin_file_loaded", path=str(config.admin_credentials_file))

        return config
