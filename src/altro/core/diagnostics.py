from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


def _safe_preview(text: str, limit: int = 320) -> str:
    value = (text or "").strip()
    if len(value) <= limit:
        return value
    return value[:limit].rstrip() + "…"


@dataclass
class GenerationDiagnostics:
    """
    Snapshot of a single orchestration call.
    """

    session_id: str
    mode: str
    model: str
    timestamp_utc: str
    input_preview: str = ""
    output_preview: str = ""
    duration_ms: Optional[float] = None
    streamed: bool = False
    chunks: int = 0
    degraded_retry: bool = False
    isomorphism_fallback: bool = False
    disclaimer: bool = False
    active_domains: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "mode": self.mode,
            "model": self.model,
            "timestamp_utc": self.timestamp_utc,
            "input_preview": self.input_preview,
            "output_preview": self.output_preview,
            "duration_ms": self.duration_ms,
            "streamed": self.streamed,
            "chunks": self.chunks,
            "degraded_retry": self.degraded_retry,
            "isomorphism_fallback": self.isomorphism_fallback,
            "disclaimer": self.disclaimer,
            "active_domains": list(self.active_domains),
            "error": self.error,
        }

    @classmethod
    def start(cls, session_id: str, mode: str, model: str, text: str) -> "GenerationDiagnostics":
        return cls(
            session_id=session_id,
            mode=mode,
            model=model,
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            input_preview=_safe_preview(text),
        )


def write_generation_log(diagnostics: GenerationDiagnostics, directory: str | Path) -> Path:
    """
    Append diagnostics as JSONL into <directory>/YYYY-MM-DD.jsonl.
    """

    out_dir = Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)

    ts = datetime.now(timezone.utc)
    log_path = out_dir / f"{ts:%Y-%m-%d}.jsonl"
    payload = diagnostics.to_dict()

    with log_path.open("a", encoding="utf-8") as fp:
        fp.write(json.dumps(payload, ensure_ascii=False) + "\n")

    return log_path
