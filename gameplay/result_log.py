"""Result logging -- writes a JSONL line for each finalized session."""

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from gameplay.controller import SessionResult


def log_result(
    log_path: Path,
    result: SessionResult,
    player_id: str,
    validator_id: str,
    mode: str = 'training',
) -> Dict:
    """
    Append a finalized session record to the JSONL log file.

    Args:
        log_path:      Path to the result log file
        result:        SessionResult from a RoundController
        player_id:     Opaque player identifier
        validator_id:  Which validator (template/runtime) was played
        mode:          'training' or 'testing'

    Returns:
        The record dict that was written.
    """
    reasons: Dict[str, int] = {}
    for qr in result.question_results:
        reasons[qr.reason] = reasons.get(qr.reason, 0) + 1

    record = {
        'timestamp': datetime.now().isoformat(),
        'player_id': player_id,
        'validator_id': validator_id,
        'mode': mode,
        'level': int(result.level),
        'level_label': result.level.label,
        'passed': result.passed,
        'xp': result.xp,
        'end_reason': result.end_reason,
        'accuracy': result.metrics.accuracy,
        'accuracy_pct': result.accuracy_pct,
        'time_s': result.metrics.elapsed_s,
        'edge_score': result.metrics.edge_case_score,
        'session_count': result.metrics.session_count,
        'reason_histogram': reasons,
        'edge_case': result.edge_case.to_dict() if result.edge_case else None,
    }

    log_path.parent.mkdir(parents=True, exist_ok=True)
    with open(log_path, 'a', encoding='utf-8') as f:
        f.write(json.dumps(record, ensure_ascii=False) + '\n')

    return record


def read_result_log(log_path: Path) -> List[Dict]:
    """Read all result records from the log file."""
    records = []
    if not log_path.exists():
        return records
    with open(log_path, 'r', encoding='utf-8') as f:
        for line in f:
            line = line.strip()
            if line:
                records.append(json.loads(line))
    return records


def count_completed_sessions(
    log_path: Path,
    player_id: str,
    validator_id: Optional[str] = None,
) -> int:
    """Finished sessions already logged for a player (optionally one validator)."""
    return sum(
        1 for r in read_result_log(log_path)
        if r.get('player_id') == player_id
        and (validator_id is None or r.get('validator_id') == validator_id)
    )
