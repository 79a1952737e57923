"""
signals.py — Ledger events for realtime push.

Routes send these AFTER db.session.commit(), so a receiver never sees an
event for a change that was rolled back. The sender is the Flask app
(current_app._get_current_object()); keyword arguments carry the group id
and the serialized payload returned to the client.

    from groupledger.app import signals
    signals.expense_added.send(app, group_id=7, payload={...})

A websocket bridge subscribes exactly like log_ledger_event below. The
ledger engine never sends signals.
"""

from __future__ import annotations

import logging

from blinker import Namespace

logger = logging.getLogger(__name__)

_ledger_signals = Namespace()

expense_added    = _ledger_signals.signal("expense-added")
expense_updated  = _ledger_signals.signal("expense-updated")
expense_deleted  = _ledger_signals.signal("expense-deleted")
settlement_added = _ledger_signals.signal("settlement-added")
group_created    = _ledger_signals.signal("group-created")
member_added     = _ledger_signals.signal("member-added")
group_deleted    = _ledger_signals.signal("group-deleted")

ALL_SIGNALS = (
    expense_added,
    expense_updated,
    expense_deleted,
    settlement_added,
    group_created,
    member_added,
    group_deleted,
)


def log_ledger_event(sender, group_id: int | None = None, payload: dict | None = None, **extra) -> None:
    logger.info("ledger event: group=%s payload_keys=%s", group_id, sorted((payload or {}).keys()))


def connect_default_receivers() -> None:
    """Attaches the logging receiver to every ledger signal. Safe to call twice."""
    for sig in ALL_SIGNALS:
        # weak=False: module-level function, and blinker dedupes by receiver id.
        sig.connect(log_ledger_event, weak=False)


def emit(sig, sender, group_id: int | None, payload: dict | None = None) -> None:
    logger.debug("sending %s for group %s", sig.name, group_id)
    sig.send(sender, group_id=group_id, payload=payload or {})
