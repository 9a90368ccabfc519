"""
Audit trail for approval decisions, loan events and degraded payroll lines.
One JSONL file per tenant; entries are appended and never rewritten.
"""
import json
from pathlib import Path
from typing import Dict, List, Any, Optional
from datetime import datetime

from hrflow.core.config import settings

class AuditLogger:
    """Append-only JSONL audit log for one tenant."""

    def __init__(self, tenant_id: str, audit_dir: Optional[str] = None):
        self.tenant_id = tenant_id
        self.audit_dir = Path(audit_dir or Path(settings.AUDIT_LOG_PATH) / "audit")
        self.audit_dir.mkdir(parents=True, exist_ok=True)
        self.changes_log = self.audit_dir / f"{tenant_id}_changes.jsonl"

    def log_event(
        self,
        entity_type: str,
        operation: str,  # 'initiate', 'approve', 'reject', 'skip_installment', ...
        entity_id: str,
        changes: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        log_entry = {
            'timestamp': datetime.now().isoformat(),
            'tenant_id': self.tenant_id,
            'entity_type': entity_type,
            'operation': operation,
            'entity_id': entity_id,
            'changes': changes or {},
            'user_id': user_id
        }
        with open(self.changes_log, 'a', encoding='utf-8') as f:
            f.write(json.dumps(log_entry, default=str) + '\n')
        return log_entry

    def read_all(self) -> List[Dict[str, Any]]:
        if not self.changes_log.exists():
            return []
        entries = []
        with open(self.changes_log, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    # a torn last line from a crashed writer
                    continue
        return entries

    def get_change_history(self, entity_type: str, entity_id: str) -> List[Dict[str, Any]]:
        """Entries for one entity, oldest first."""
        return [
            e for e in self.read_all()
            if e.get('entity_type') == entity_type and e.get('entity_id') == entity_id
        ]

    def get_operation_counts(self, entity_type: Optional[str] = None) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for e in self.read_all():
            if entity_type is not None and e.get('entity_type') != entity_type:
                continue
            op = e.get('operation', 'unknown')
            counts[op] = counts.get(op, 0) + 1
        return counts
