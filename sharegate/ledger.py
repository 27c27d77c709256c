from __future__ import annotations

import datetime as dt
import logging
from typing import Optional

from pydantic import BaseModel

from .errors import InfrastructureFault
from .grants import AnyTarget, Decision, DenyReason, evaluate_state
from .records import RequesterContext, ShareRecordStore

logger = logging.getLogger(__name__)


class CommitResult(BaseModel):
    committed: bool
    decision: Decision
    audit_id: Optional[int] = None


def commit(
    store: ShareRecordStore,
    target: AnyTarget,
    requester: RequesterContext,
    now: dt.datetime,
) -> CommitResult:
    """Count one download and write its audit row in a single transaction.

    The evaluator's earlier ALLOW is advisory; the conditional increment is
    the authoritative check. Losing the race is a normal denial, not a fault.
    A successful commit is final even if the transfer is later aborted.
    """
    try:
        if not store.conditional_increment(target, now):
            store.rollback()
            return _lost_race(store, target, now)
        entry = store.insert_audit(target, requester, now)
        store.commit()
    except InfrastructureFault:
        logger.exception(f"Download commit failed for {target.kind} target {target.target_id}")
        raise

    logger.info(
        f"Download committed: {target.kind} target {target.target_id} file {target.file_id} audit {entry.id}"
    )
    return CommitResult(committed=True, decision=Decision.allow(), audit_id=entry.id)


def _lost_race(store: ShareRecordStore, target: AnyTarget, now: dt.datetime) -> CommitResult:
    current = store.reload(target)
    decision = evaluate_state(current, now)
    if decision.allowed:
        # The update matched nothing, so the counter moved under us
        decision = Decision.deny(DenyReason.LIMIT_REACHED)
    logger.info(f"Download not committed for {target.kind} target {target.target_id}: {decision.reason.value}")
    return CommitResult(committed=False, decision=decision)
