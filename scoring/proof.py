"""Immutable proof receipts for passing testing-mode sessions."""

import hashlib
import json
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

from scoring.models import ProficiencyLevel, SessionMetrics


def make_receipt_id() -> str:
    return f"PRF-{uuid.uuid4().hex[:8].upper()}"


def _digest(body: Dict) -> str:
    canonical = json.dumps(body, sort_keys=True, separators=(',', ':'), ensure_ascii=False)
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()


def make_receipt(
    player_id: str,
    validator_id: str,
    competency: str,
    level: ProficiencyLevel,
    metrics: SessionMetrics,
    xp: int,
    receipt_id: Optional[str] = None,
    timestamp: Optional[str] = None,
) -> Dict:
    """
    Build a proof receipt: the body plus a SHA-256 digest of its canonical JSON.

    receipt_id and timestamp are injectable so tests get stable output.
    """
    body = {
        'receipt_id': receipt_id or make_receipt_id(),
        'player_id': player_id,
        'validator_id': validator_id,
        'competency': competency or 'Unknown',
        'level': int(level),
        'level_label': ProficiencyLevel(level).label,
        'xp': xp,
        'metrics': {
            'accuracy': metrics.accuracy,
            'time_s': metrics.elapsed_s,
            'edge_score': metrics.edge_case_score,
            'sessions': metrics.session_count,
        },
        'timestamp': timestamp or datetime.now(timezone.utc).isoformat(),
    }
    return {**body, 'digest': _digest(body)}


def verify_receipt(receipt: Dict) -> bool:
    """True if the digest still matches the receipt body."""
    body = {k: v for k, v in receipt.items() if k != 'digest'}
    return receipt.get('digest') == _digest(body)
