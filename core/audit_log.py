"""
launch-trader Core: Audit Logger

Structured logging of every cycle outcome for debugging and analysis.
Trade history in the store is the user-facing record; this file is the
operator's view of what each cycle decided.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class AuditLogger:
    """
    Structured audit trail logger.

    Logs every cycle including:
    - Phases reached and their summaries
    - Positions closed and bought
    - Cycle-level errors (raw detail, never shown to users)

    Output format: JSONL (one JSON object per line)
    """

    def __init__(self, audit_file: Optional[str] = None):
        if audit_file:
            self.audit_file = Path(audit_file)
        else:
            self.audit_file = Path("logs/audit.jsonl")

        self.audit_file.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Initialized AuditLogger at {self.audit_file}")

    def log_cycle(self, report: Any) -> None:
        """
        Append one cycle report.

        A failed audit write is logged and never fails the cycle.
        """
        try:
            entry: Dict[str, Any] = {
                "timestamp": report.started_at.isoformat(),
                "user_id": report.user_id,
                "kind": report.kind,
                "status": report.status,
                "final_phase": report.final_phase.value,
                "duration_seconds": round(report.duration_seconds, 3),
                "phases": [phase.summary() for phase in report.phases],
                "errors": [
                    {"phase": err.phase, "kind": err.kind, "detail": err.detail}
                    for err in report.errors
                ],
            }
            with open(self.audit_file, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry) + "\n")
            logger.debug(f"Audited cycle: status={entry['status']}")
        except Exception as e:
            logger.error(f"Failed to write audit log: {e}")

    def get_recent_cycles(self, n: int = 10) -> List[Dict[str, Any]]:
        """
        Get the N most recent cycle logs.

        Returns:
            List of cycle log entries (most recent first)
        """
        if not self.audit_file.exists():
            return []

        try:
            with open(self.audit_file, "r", encoding="utf-8") as f:
                lines = f.readlines()

            cycles = []
            for line in lines[-n:]:
                try:
                    cycles.append(json.loads(line))
                except json.JSONDecodeError:
                    continue

            return list(reversed(cycles))

        except OSError as e:
            logger.error(f"Failed to read audit log: {e}")
            return []
