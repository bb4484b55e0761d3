"""
Unit tests for conversation history and transcript files.
"""
from datetime import datetime

from studycoach.orchestrator.history import ConversationHistory
from studycoach.utils.transcript import open_transcript


class TestConversationHistory:

    def test_append_exchange(self, repository):
        history = ConversationHistory(repository)
        turns = history.append_exchange("s1", "오늘 뭐 공부해?", "이차함수부터 해요!", "COACH",
                                        now=datetime(2025, 3, 3, 9, 0))
        assert [t["role"] for t in turns] == ["user", "assistant"]
        assert turns[1]["agent_role"] == "COACH"
        assert "agent_role" not in turns[0]
        assert history.recent("s1") == turns

    def test_cap_keeps_latest_messages(self, repository):
        history = ConversationHistory(repository, max_turns=4)
        for i in range(3):
            history.append_exchange("s1", f"질문 {i}", f"답변 {i}", "COACH")
        assert [t["content"] for t in history.recent("s1")] == ["질문 1", "답변 1", "질문 2", "답변 2"]

    def test_recent_limit_and_clear(self, repository):
        history = ConversationHistory(repository)
        history.append_exchange("s1", "안녕", "안녕하세요!", "COACH")
        assert history.recent("s1", limit=1)[0]["content"] == "안녕하세요!"
        history.clear("s1")
        assert history.recent("s1") == []


class TestTranscript:

    def test_disabled_without_directory(self):
        assert open_transcript("", "c1") is None

    def test_writes_turns_routes_and_errors(self, tmp_path):
        transcript = open_transcript(str(tmp_path), "c1")
        transcript.log_turn("STUDENT", "오늘 뭐 공부해?")
        transcript.log_route({"role": "COACH", "intent": "SCHEDULE_QUERY"})
        transcript.log_turn("COACH", "이차함수부터 해요!", agent_role="COACH")
        transcript.log_error("coach", "timed out")

        text = (tmp_path / "conversation_c1.log").read_text(encoding="utf-8")
        assert "COACHING CONVERSATION" in text
        assert 'ROUTE: {"role": "COACH", "intent": "SCHEDULE_QUERY"}' in text
        assert "COACH (COACH)" in text
        assert "ERROR in coach" in text

    def test_reopening_keeps_existing_log(self, tmp_path):
        open_transcript(str(tmp_path), "c1").log_turn("STUDENT", "첫 메시지")
        open_transcript(str(tmp_path), "c1")
        text = (tmp_path / "conversation_c1.log").read_text(encoding="utf-8")
        assert text.count("COACHING CONVERSATION") == 1
        assert "첫 메시지" in text
