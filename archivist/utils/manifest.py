"""
Attempt log for capture submissions.

Stores an append-only JSON Lines file with one record per save-now attempt,
so a run can be audited after the fact (which address was loaded, where the
page ended up, whether the quota message appeared).
"""

import json
import os
from dataclasses import dataclass, asdict, field
from typing import Optional, Dict, Any, Iterable, List


DEFAULT_ATTEMPT_LOG_NAME = "attempts.jsonl"


@dataclass
class AttemptRecord:
    url: str
    attempt: int
    save_url: str = ""
    current_url: Optional[str] = None
    limit_detected: bool = False
    archived_url: Optional[str] = None
    success: bool = False
    error: Optional[str] = None
    content_preview: str = ""
    started_at: float = 0.0
    finished_at: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)


class AttemptLog:
    def __init__(self, output_dir: str):
        self.output_dir = output_dir
        self.path = os.path.join(self.output_dir, DEFAULT_ATTEMPT_LOG_NAME)

    def append(self, rec: AttemptRecord) -> None:
        os.makedirs(self.output_dir, exist_ok=True)
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(json.dumps(asdict(rec), ensure_ascii=False) + "\n")

    def iter_records(self) -> Iterable[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return
        with open(self.path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    continue

    def records_for(self, url: str) -> List[Dict[str, Any]]:
        return [rec for rec in self.iter_records() if rec.get('url') == url]

