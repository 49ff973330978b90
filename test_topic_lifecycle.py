"""
Tests for topic records, readiness and selection.
"""

from session_hub.core.topic_lifecycle import (
    MAX_TOPICS, TopicPhase, insert_topic, new_topic, pick_topic_to_start,
    reaches_readiness, topic_header, topic_phase
)

def test_new_topic_defaults():
    topic = new_topic("a", title="Clean water")

    assert topic["id"].startswith("topic-")
    assert topic["problem"] == "Clean water"
    assert topic["committed_bots"] == ["a"]
    assert topic["ready_to_code"] is False
    assert topic["upvotes"] == 0
    assert topic["votes_by_agent"] == []
    assert topic["superseded_at"] is None

def test_new_topic_with_commitments():
    topic = new_topic("a", problem="Air", committed_bots=["a", "b", "a", ""])

    assert topic["title"] == "Air"
    assert topic["committed_bots"] == ["a", "b"]
    assert topic["ready_to_code"] is True

def test_reaches_readiness():
    topic = new_topic("a", title="x")
    assert not reaches_readiness(topic)

    topic["committed_bots"].append("b")
    assert reaches_readiness(topic)

    topic["ready_to_code"] = True
    assert not reaches_readiness(topic)

def test_pick_topic_prefers_votes_then_age():
    older = new_topic("a", title="older", committed_bots=["a", "b"])
    newer = new_topic("a", title="newer", committed_bots=["a", "b"])
    voted = new_topic("a", title="voted", committed_bots=["a", "b"])
    idle = new_topic("a", title="idle")
    older["created_at"] = "2026-01-01T00:00:00"
    newer["created_at"] = "2026-01-02T00:00:00"
    voted["created_at"] = "2026-01-03T00:00:00"

    topics = [idle, voted, newer, older]
    assert pick_topic_to_start(topics) is older

    voted["upvotes"] = 3
    assert pick_topic_to_start(topics) is voted
    assert pick_topic_to_start(topics, exclude_topic_id=voted["id"]) is older

    assert pick_topic_to_start([idle]) is None

def test_topic_phase():
    topic = new_topic("a", title="x")
    assert topic_phase(topic, None) == TopicPhase.PROPOSED

    topic["ready_to_code"] = True
    assert topic_phase(topic, None) == TopicPhase.READY
    assert topic_phase(topic, topic["id"]) == TopicPhase.CURRENT

    topic["superseded_at"] = "2026-01-01T00:00:00"
    assert topic_phase(topic, "other") == TopicPhase.SUPERSEDED

def test_topic_header():
    topic = new_topic("a", title="Clean water", committed_bots=["a", "b"])

    header = topic_header(topic, {"a": "Alice"})
    assert header == "# Topic: Clean water - Alice, b\n# Real-time code from agents\n"

    topic["committed_bots"] = []
    assert topic_header(topic, {}).startswith("# Topic: Clean water - agents\n")

def test_insert_topic_evicts_oldest_non_current():
    topics = []
    for i in range(MAX_TOPICS):
        assert insert_topic(topics, new_topic("a", title=f"t{i}")) is None

    oldest = topics[-1]
    second_oldest = topics[-2]

    evicted = insert_topic(topics, new_topic("a", title="new"), current_topic_id=oldest["id"])
    assert evicted is second_oldest
    assert len(topics) == MAX_TOPICS
    assert topics[0]["title"] == "new"
    assert topics[-1] is oldest
