"""提供下單者匿名識別碼的模組。"""

from __future__ import annotations

from typing import MutableMapping, Optional
from uuid import uuid4


SESSION_KEY = "submitter_ref"


class SessionIdentityProvider:
    """以 Flask session 保存匿名識別碼，等同匿名登入。"""

    def __init__(self, enabled: bool = True) -> None:
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def resolve(self, session: MutableMapping) -> Optional[str]:
        """取得（必要時建立）目前連線的識別碼；停用時回傳 None。"""

        if not self._enabled:
            return None
        ref = session.get(SESSION_KEY)
        if not ref:
            ref = uuid4().hex
            session[SESSION_KEY] = ref
        return ref
