"""
HTTP tests for the FastAPI routers, run against the in-memory container.
"""
import pytest

PLAN = {
    "subject": "MATH",
    "title": "수학 기초 다지기",
    "start_date": "2025-03-03",
    "end_date": "2025-03-14",
    "units": [
        {"title": "일차함수", "estimated_minutes": 30},
        {"title": "이차함수", "estimated_minutes": 30},
        {"title": "방정식", "estimated_minutes": 30},
    ],
    "daily_minutes": 60,
}


@pytest.fixture
def enrolled(client):
    response = client.post("/students", json={"name": "민지", "student_id": "s1", "grade": "중2"})
    assert response.status_code == 200
    return response.json()["student"]


@pytest.fixture
def plan(client, enrolled):
    response = client.post("/students/s1/plans", json=PLAN)
    assert response.status_code == 200
    return response.json()


class TestRoot:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "coach" in response.json()["endpoints"]


class TestStudents:

    def test_create_and_fetch(self, client, enrolled):
        assert enrolled["grade"] == "중2"
        response = client.get("/students/s1")
        assert response.json()["student"]["name"] == "민지"

    def test_duplicate_student(self, client, enrolled):
        response = client.post("/students", json={"name": "민지", "student_id": "s1"})
        assert response.status_code == 409

    def test_unknown_student(self, client):
        assert client.get("/students/nobody").status_code == 404

    def test_plan_creates_quests(self, plan):
        assert plan["quest_count"] == 3
        assert [u["title"] for u in plan["plan"]["units"]] == ["일차함수", "이차함수", "방정식"]

    def test_plan_needs_units(self, client, enrolled):
        response = client.post("/students/s1/plans", json={**PLAN, "units": []})
        assert response.status_code == 422

    def test_plan_end_before_start(self, client, enrolled):
        response = client.post("/students/s1/plans", json={**PLAN, "end_date": "2025-03-01"})
        assert response.status_code == 409

    def test_memory_export_import(self, client, enrolled):
        client.post("/coach/chat", json={"student_id": "s1", "message": "이차함수 문제를 계속 틀려서 너무 어려워"})
        records = client.get("/students/s1/memories").json()["records"]
        assert len(records) == 1
        client.post("/students", json={"name": "지우", "student_id": "s2"})
        response = client.post("/students/s2/memories/import", json={"records": records})
        assert response.json()["imported"] == 1


class TestQuests:

    def test_generate_day(self, client, plan):
        response = client.post("/quests/s1/generate", params={"day": "2025-03-03"})
        quests = response.json()["quests"]
        assert [q["title"] for q in quests["main_quests"]] == ["📖 일차함수", "📖 이차함수"]
        assert quests["summary"]["estimated_total_minutes"] == 60

    def test_complete_quest_once(self, client, plan):
        quests = client.post("/quests/s1/generate", params={"day": "2025-03-03"}).json()["quests"]
        quest_id = quests["main_quests"][0]["id"]

        first = client.post(f"/quests/s1/{quest_id}/complete").json()
        assert first["already_completed"] is False
        assert first["earned_xp"] == quests["main_quests"][0]["xp_reward"]

        second = client.post(f"/quests/s1/{quest_id}/complete").json()
        assert second["already_completed"] is True

    def test_unknown_quest(self, client, plan):
        assert client.post("/quests/s1/missing/complete").status_code == 404

    def test_expire_overdue(self, client, plan):
        response = client.post("/quests/s1/expire", params={"today": "2025-03-05"})
        body = response.json()
        assert len(body["expired"]) == 3
        assert body["delay"]["consecutive_missed_days"] == 2


class TestMastery:

    def test_review_and_due(self, client, plan):
        response = client.post("/mastery/review", json={
            "student_id": "s1", "topic_id": "이차함수", "quality": 5, "subject": "MATH", "today": "2025-03-03",
        })
        assert response.status_code == 200
        assert response.json()["mastery"]["next_due"] == "2025-03-04"

        due = client.get("/mastery/s1/due", params={"as_of": "2025-03-10"}).json()
        assert due["due_topics"] == ["이차함수"]

    def test_topic_outside_plans(self, client, plan):
        response = client.post("/mastery/review", json={"student_id": "s1", "topic_id": "미적분", "quality": 4})
        assert response.status_code == 422

    def test_quality_out_of_range(self, client, plan):
        response = client.post("/mastery/review", json={"student_id": "s1", "topic_id": "이차함수", "quality": 7})
        assert response.status_code == 422


class TestReschedule:

    def evaluate(self, client, plan):
        return client.post("/reschedule/evaluate", json={
            "student_id": "s1", "plan_id": plan["plan"]["id"], "quest_day": 1, "today": "2025-03-03",
        })

    def test_evaluate_moves_nothing(self, client, plan):
        body = self.evaluate(client, plan).json()
        assert body["decision"]["state"] == "EVALUATED"
        assert body["decision"]["new_date"] > "2025-03-03"
        assert body["message_actions"][0]["type"] == "APPLY_RESCHEDULE"
        quests = client.post("/quests/s1/generate", params={"day": "2025-03-03"}).json()["quests"]
        assert len(quests["main_quests"]) == 2

    def test_apply_then_apply_again(self, client, plan):
        decision = self.evaluate(client, plan).json()["decision"]
        applied = client.post("/reschedule/apply", json={"decision": decision})
        assert applied.status_code == 200
        assert applied.json()["decision"]["state"] == "APPLIED"
        assert applied.json()["quest"]["date"] == decision["new_date"]

        again = client.post("/reschedule/apply", json={"decision": applied.json()["decision"]})
        assert again.status_code == 409

    def test_reject(self, client, plan):
        decision = self.evaluate(client, plan).json()["decision"]
        response = client.post("/reschedule/reject", json={"decision": decision})
        assert response.json()["decision"]["state"] == "REJECTED"

    def test_malformed_decision(self, client, plan):
        assert client.post("/reschedule/apply", json={"decision": {"quest_id": "x"}}).status_code == 422

    def test_completed_quest_cannot_be_moved(self, client, plan):
        decision = self.evaluate(client, plan).json()["decision"]
        client.post(f"/quests/s1/{decision['quest_id']}/complete")
        assert client.post("/reschedule/apply", json={"decision": decision}).status_code == 409

    def test_forged_date_is_refused(self, client, plan):
        decision = self.evaluate(client, plan).json()["decision"]
        forged = {**decision, "new_date": "2000-01-01"}
        assert client.post("/reschedule/apply", json={"decision": forged}).status_code == 409

        quests = client.post("/quests/s1/generate", params={"day": "2025-03-03"}).json()["quests"]
        assert decision["quest_id"] in [q["id"] for q in quests["main_quests"]]

    def test_hand_built_decision_is_refused(self, client, plan):
        decision = self.evaluate(client, plan).json()["decision"]
        hand_built = {**decision, "id": "", "strategy": "STACK_NEXT_DAY", "new_date": "2025-03-04"}
        assert client.post("/reschedule/apply", json={"decision": hand_built}).status_code == 409

    def test_finished_day_cannot_be_evaluated(self, client, plan):
        quests = client.post("/quests/s1/generate", params={"day": "2025-03-03"}).json()["quests"]
        for quest in quests["main_quests"]:
            client.post(f"/quests/s1/{quest['id']}/complete")
        assert self.evaluate(client, plan).status_code == 409

    def test_unknown_plan_day(self, client, plan):
        response = client.post("/reschedule/evaluate", json={
            "student_id": "s1", "plan_id": plan["plan"]["id"], "quest_day": 99, "today": "2025-03-03",
        })
        assert response.status_code == 404


class TestProgress:

    def test_progress(self, client, plan):
        body = client.get("/progress/s1", params={"today": "2025-03-03"}).json()
        assert body["burnout"]["level"] == "LOW"
        assert body["recommendation"]["recommendation"] == "CONTINUE"
        assert body["plans"][0]["total"] == 3

    def test_unknown_student(self, client):
        assert client.get("/progress/nobody").status_code == 404


class TestCoach:

    def test_chat_and_history(self, client, enrolled):
        response = client.post("/coach/chat", json={"student_id": "s1", "message": "진도 어디까지 나갔어?"})
        assert response.status_code == 200
        assert response.json()["agent_role"] == "ANALYST"
        assert response.json()["dispatch_kind"] == "SUCCESS"

        turns = client.get("/coach/s1/history").json()["turns"]
        assert [t["role"] for t in turns] == ["user", "assistant"]

    def test_empty_message(self, client, enrolled):
        response = client.post("/coach/chat", json={"student_id": "s1", "message": "   "})
        assert response.status_code == 422
