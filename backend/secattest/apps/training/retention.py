"""
Transcript retention.

``purge_transcripts`` clears stored free-text answers and evaluator rationales
from modules last written before the tenant's retention cutoff. Scores,
selected options and the audit log are untouched. Modules whose session is
still active are skipped and picked up again on a later run.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from ...config import TenantSettings
from ...storage import StorageAdapter
from ..workflow import is_terminal_session_state
from .repository import TrainingRepository, VersionConflict
from .schemas import TrainingModule, TranscriptPurgeOut

logger = logging.getLogger(__name__)

_TEXT_FIELDS = {"free_text_response": None, "llm_rationale": None}


def _has_transcript(module: TrainingModule) -> bool:
    items = [*module.scenario_responses, *module.quiz_answers]
    return any(item.free_text_response or item.llm_rationale for item in items)


def purge_transcripts(
    storage: StorageAdapter,
    settings: TenantSettings,
    *,
    now: Optional[datetime] = None,
) -> TranscriptPurgeOut:
    tenant_id = settings.tenant_id
    result = TranscriptPurgeOut(tenant_id=tenant_id)
    retention_days = settings.retention.transcript_retention_days
    if retention_days is None:
        return result

    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=retention_days)
    repo = TrainingRepository(storage)
    sessions = {}

    for module in repo.find_modules_updated_before(tenant_id, cutoff):
        result.modules_processed += 1

        if module.session_id not in sessions:
            sessions[module.session_id] = repo.find_session_by_id(tenant_id, module.session_id)
        session = sessions[module.session_id]
        if session is None or not is_terminal_session_state(session.status):
            result.modules_skipped += 1
            continue

        if not _has_transcript(module):
            continue

        try:
            repo.update_module(
                tenant_id,
                module.id,
                {
                    "scenario_responses": [
                        item.model_copy(update=_TEXT_FIELDS) for item in module.scenario_responses
                    ],
                    "quiz_answers": [item.model_copy(update=_TEXT_FIELDS) for item in module.quiz_answers],
                },
                module.version,
            )
        except VersionConflict:
            logger.warning(
                "Module changed during transcript purge; will retry on next run",
                extra={"tenant_id": tenant_id, "session_id": module.session_id, "module_id": module.id},
            )
            result.modules_skipped += 1
            continue
        result.modules_purged += 1

    logger.info(
        "Transcript purge finished",
        extra={
            "tenant_id": tenant_id,
            "modules_processed": result.modules_processed,
            "modules_purged": result.modules_purged,
            "modules_skipped": result.modules_skipped,
        },
    )
    return result

