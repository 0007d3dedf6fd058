from typing import Any, Mapping, Optional, Union

from ..errors import NotReadyError, ValidationError
from .ledger_store import LedgerStore, OrderDraft, OrderRecord
from .logging import log_event


class SubmissionService:
    """Accepts new orders from identified callers."""

    def __init__(self, store: LedgerStore):
        self._store = store

    def submit(
        self,
        submitter_ref: Optional[str],
        draft: Union[OrderDraft, Mapping[str, Any]],
    ) -> OrderRecord:
        if not submitter_ref:
            raise NotReadyError("Please wait for the system to connect.")
        if not isinstance(draft, OrderDraft):
            draft = OrderDraft.from_payload(draft)
        try:
            return self._store.create(draft, submitter_ref)
        except ValidationError as exc:
            log_event("info", "order.rejected", field=exc.field, submitter_ref=submitter_ref)
            raise
