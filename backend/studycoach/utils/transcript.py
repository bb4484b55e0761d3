"""
Per-conversation transcript files.
Logs routing decisions, agent replies and fallbacks when TRANSCRIPT_DIR is set.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


class ConversationTranscript:
    def __init__(self, log_dir: str, conversation_id: str):
        self.conversation_id = conversation_id
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = self.log_dir / f"conversation_{conversation_id}.log"

        if not self.log_file.exists():
            self._write_header()

    def _write_header(self):
        with open(self.log_file, 'w', encoding='utf-8') as f:
            f.write("=" * 80 + "\n")
            f.write("COACHING CONVERSATION\n")
            f.write(f"Conversation ID: {self.conversation_id}\n")
            f.write(f"Started: {datetime.now().isoformat()}\n")
            f.write("=" * 80 + "\n\n")

    def log_turn(self, speaker: str, message: str, agent_role: Optional[str] = None):
        timestamp = datetime.now().strftime("%H:%M:%S")
        label = f"{speaker} ({agent_role})" if agent_role else speaker
        with open(self.log_file, 'a', encoding='utf-8') as f:
            f.write(f"[{timestamp}] {label}\n")
            f.write(f"{message}\n")
            f.write(f"{'-' * 80}\n")

    def log_route(self, decision: Dict[str, Any]):
        with open(self.log_file, 'a', encoding='utf-8') as f:
            f.write(f"ROUTE: {json.dumps(decision, ensure_ascii=False)}\n")

    def log_error(self, component: str, error: str):
        timestamp = datetime.now().strftime("%H:%M:%S")
        with open(self.log_file, 'a', encoding='utf-8') as f:
            f.write(f"\n{'!' * 80}\n")
            f.write(f"[{timestamp}] ERROR in {component}\n")
            f.write(f"{error}\n")
            f.write(f"{'!' * 80}\n\n")


def open_transcript(log_dir: str, conversation_id: str) -> Optional[ConversationTranscript]:
    """Transcript for the conversation, or None when transcripts are disabled"""
    if not log_dir:
        return None
    return ConversationTranscript(log_dir, conversation_id)
