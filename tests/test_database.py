"""
Tests for sqlite storage of analyses and chat messages.
"""
import pytest


class TestAnalyses:

    def test_create_and_get(self, store):
        results = {"total_panels": 12, "regions": [{"x": 0.2, "y": 0.2}], "source": "fallback"}
        created = store.create_analysis(1, "installation", "uploads/roof.png", results)

        assert created["id"] > 0
        assert created["type"] == "installation"
        assert created["results"] == results
        assert created["created_at"]
        assert store.get_analysis(created["id"]) == created

    def test_missing_analysis(self, store):
        assert store.get_analysis(999) is None

    def test_unknown_type_rejected(self, store):
        with pytest.raises(ValueError):
            store.create_analysis(1, "quotation", "uploads/roof.png", {})

    def test_user_listing_newest_first(self, store):
        first = store.create_analysis(1, "installation", "a.png", {"n": 1})
        second = store.create_analysis(1, "fault-detection", "b.jpg", {"n": 2})
        store.create_analysis(2, "installation", "c.png", {"n": 3})

        listed = store.get_analyses_by_user(1)
        assert [a["id"] for a in listed] == [second["id"], first["id"]]
        assert store.get_analyses_by_user(3) == []


class TestChatMessages:

    def test_defaults(self, store):
        message = store.create_chat_message(1, "Anonymous", "Hello")
        assert message["type"] == "user"
        assert message["category"] == "general"
        assert message["message"] == "Hello"

    def test_limit_keeps_most_recent_in_order(self, store):
        for i in range(5):
            store.create_chat_message(1, "Anonymous", f"message {i}")

        messages = store.get_chat_messages(limit=3)
        assert [m["message"] for m in messages] == ["message 2", "message 3", "message 4"]

    def test_ai_reply_stored_with_category(self, store):
        store.create_chat_message(0, "AI Assistant", "Clean twice a year", "ai", "maintenance")
        (message,) = store.get_chat_messages()
        assert (message["username"], message["type"], message["category"]) == (
            "AI Assistant", "ai", "maintenance")
