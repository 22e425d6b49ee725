"""
Event Logger for the Navlungo pricing service

Records every quote-flow step as JSONL (one JSON object per line) so a
failed login or an empty scrape can be replayed afterwards:
- step calls and errors (with traceback)
- login state transitions
- captured portal responses
- quote results

Files are organised by date, one file per session.
"""

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class QuoteEventLogger:
    """Logs quote-flow events to JSONL files organized by date."""

    def __init__(self, storage_dir: str = "logs/navlungo"):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self.current_session_id: Optional[str] = None
        self.current_session_file: Optional[Path] = None

    def start_session(self, metadata: Optional[Dict[str, Any]] = None) -> str:
        """Start a new logging session."""
        self.current_session_id = f"session_{datetime.now().strftime('%H%M%S')}_{uuid.uuid4().hex[:6]}"

        date_folder = self.storage_dir / datetime.now().strftime("%Y-%m-%d")
        date_folder.mkdir(exist_ok=True)

        self.current_session_file = date_folder / f"{self.current_session_id}.jsonl"

        self._write_event({
            "event": "session_start",
            "session_id": self.current_session_id,
            "metadata": metadata or {}
        })
        self._update_index()

        print(f"[EventLogger] Started session: {self.current_session_id}")
        return self.current_session_id

    def log_step(
        self,
        step: str,
        args: Dict[str, Any],
        result: Any,
        duration_ms: Optional[float] = None
    ) -> None:
        """Log a completed step with its (truncated) result."""
        event = {
            "event": "step",
            "step": step,
            "args": args,
            "result": str(result)[:1000],
            "success": True
        }
        if duration_ms is not None:
            event["duration_ms"] = round(duration_ms, 2)
        self._log(event)

    def log_step_error(
        self,
        step: str,
        args: Dict[str, Any],
        error: str,
        traceback_str: Optional[str] = None,
        duration_ms: Optional[float] = None
    ) -> None:
        """Log a step that raised."""
        event = {
            "event": "step_error",
            "step": step,
            "args": args,
            "error": error,
            "success": False
        }
        if traceback_str:
            event["traceback"] = traceback_str[:2000]
        if duration_ms is not None:
            event["duration_ms"] = round(duration_ms, 2)
        self._log(event)

    def log_login_state(self, state: str, detail: Optional[str] = None) -> None:
        event = {"event": "login_state", "state": state}
        if detail:
            event["detail"] = detail
        self._log(event)

    def log_captured_response(self, url: str, quote_count: int) -> None:
        self._log({"event": "captured_response", "url": url, "quotes": quote_count})

    def log_quote_result(self, source: str, success: bool, quote_count: int, error: Optional[str] = None) -> None:
        event = {
            "event": "quote_result",
            "source": source,
            "success": success,
            "quotes": quote_count
        }
        if error:
            event["error"] = error
        self._log(event)

    def log_error(self, error: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._log({"event": "error", "error": error, "context": context or {}})

    def end_session(self, summary: Optional[str] = None) -> None:
        """End the current session."""
        if not self.current_session_file:
            return

        self._write_event({"event": "session_end", "summary": summary})

        print(f"[EventLogger] Ended session: {self.current_session_id}")
        self.current_session_id = None
        self.current_session_file = None

    def _log(self, event: Dict[str, Any]) -> None:
        if not self.current_session_file:
            self.start_session()
        self._write_event(event)

    def _write_event(self, event: Dict[str, Any]) -> None:
        if not self.current_session_file:
            return

        event["ts"] = _utc_now()

        with open(self.current_session_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(event, ensure_ascii=False, default=str) + "\n")

    def _update_index(self) -> None:
        index_file = self.storage_dir / "index.json"

        if index_file.exists():
            with open(index_file, "r") as f:
                index = json.load(f)
        else:
            index = {"sessions": []}

        index["sessions"].append({
            "session_id": self.current_session_id,
            "file": str(self.current_session_file.relative_to(self.storage_dir)),
            "started": _utc_now()
        })

        # Keep last 1000 sessions in index
        index["sessions"] = index["sessions"][-1000:]

        with open(index_file, "w") as f:
            json.dump(index, f, indent=2)

    # =========================================================================
    # Reading
    # =========================================================================

    def get_recent_sessions(self, limit: int = 100) -> List[Dict[str, Any]]:
        index_file = self.storage_dir / "index.json"
        if not index_file.exists():
            return []

        with open(index_file, "r") as f:
            index = json.load(f)

        return index.get("sessions", [])[-limit:]

    def read_session(self, session_file: str) -> List[Dict[str, Any]]:
        """Read all events from a session file (path relative to storage_dir)."""
        file_path = self.storage_dir / session_file
        if not file_path.exists():
            return []

        events = []
        with open(file_path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    events.append(json.loads(line))
        return events

    def current_events(self) -> List[Dict[str, Any]]:
        if not self.current_session_file or not self.current_session_file.exists():
            return []
        return self.read_session(str(self.current_session_file.relative_to(self.storage_dir)))

    def get_errors(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Error events across recent sessions, newest first."""
        errors = []
        for session in self.get_recent_sessions():
            for event in self.read_session(session.get("file", "")):
                if event.get("event") in ("step_error", "error"):
                    event["session_id"] = session.get("session_id")
                    errors.append(event)

        errors.sort(key=lambda e: e.get("ts", ""), reverse=True)
        return errors[:limit]


# Global logger instance
_logger: Optional[QuoteEventLogger] = None


def configure_logger(storage_dir) -> QuoteEventLogger:
    """Replace the global logger with one writing to storage_dir."""
    global _logger
    _logger = QuoteEventLogger(str(storage_dir))
    return _logger


def get_logger() -> QuoteEventLogger:
    """Get or create the event logger."""
    global _logger
    if _logger is None:
        _logger = QuoteEventLogger()
    return _logger
