"""
Unit tests for assistant chat and conversation history endpoints.
"""

import json
import os
import sys
from unittest.mock import MagicMock, patch

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

AGENT = {"sub": "agent-1", "userPosition": "user"}
OTHER = {"sub": "agent-2", "userPosition": "user"}
MANAGER = {"sub": "manager-1", "userPosition": "Manager"}


def fake_assistant(answer="Use the hex key.", sources=None, confidence=0.812):
    from onesupport_assistant import AnswerResult, AssistantConfig

    assistant = MagicMock()
    assistant.config = AssistantConfig()
    assistant.answer.return_value = AnswerResult(
        answer=answer,
        sources=sources if sources is not None else [{"title": "Door Guide", "page": 3, "score": 0.812}],
        confidence=confidence,
    )
    return assistant


def stored_conversation(user_id="agent-1", messages=None):
    return {
        "conversation_id": "conv-1",
        "user_id": user_id,
        "title": "Earlier question",
        "created_at": "2025-01-01T00:00:00+00:00",
        "updated_at": "2025-01-01T00:00:00+00:00",
        "messages": messages or [],
    }


class TestMakeTitle:
    """Tests for conversation titles."""

    def test_short_question(self):
        from onesupport_api.conversations import make_title

        assert make_title("  How do I   adjust a hinge? ") == "How do I adjust a hinge?"

    def test_truncates_long_question(self):
        from onesupport_api.conversations import make_title

        title = make_title("x" * 80)

        assert title == "x" * 50 + "..."


class TestChat:
    """Tests for asking the assistant."""

    @patch("onesupport_api.conversations.get_assistant")
    @patch("onesupport_api.conversations.conversations_table")
    def test_starts_new_conversation(self, mock_table, mock_get_assistant):
        from onesupport_api.conversations import chat

        mock_get_assistant.return_value = fake_assistant()
        mock_table.put_item = MagicMock()

        response = chat({"body": json.dumps({"question": "How do I adjust a hinge?"})}, AGENT)
        body = json.loads(response["body"])
        item = mock_table.put_item.call_args.kwargs["Item"]

        assert response["statusCode"] == 200
        assert body["data"]["answer"] == "Use the hex key."
        assert body["data"]["confidence"] == 0.812
        assert body["data"]["conversation_id"] == item["conversation_id"]
        assert item["user_id"] == "agent-1"
        assert item["title"] == "How do I adjust a hinge?"
        assert [m["role"] for m in item["messages"]] == ["user", "assistant"]
        assert item["messages"][1]["id"] == body["data"]["message_id"]
        mock_table.get_item.assert_not_called()

    @patch("onesupport_api.conversations.get_assistant")
    @patch("onesupport_api.conversations.conversations_table")
    def test_continues_conversation_with_history(self, mock_table, mock_get_assistant):
        from onesupport_api.conversations import chat

        assistant = fake_assistant()
        mock_get_assistant.return_value = assistant
        previous = [
            {"id": "m1", "role": "user", "content": "Which hinge?", "timestamp": "t1"},
            {"id": "m2", "role": "assistant", "content": "The top one.", "timestamp": "t2"},
        ]
        mock_table.get_item = MagicMock(return_value={"Item": stored_conversation(messages=previous)})

        event = {"body": json.dumps({"question": "And then?", "conversation_id": "conv-1"})}
        chat(event, AGENT)

        history = assistant.answer.call_args.args[1]
        assert [m["content"] for m in history.get_context()] == ["Which hinge?", "The top one."]
        item = mock_table.put_item.call_args.kwargs["Item"]
        assert len(item["messages"]) == 4
        assert item["title"] == "Earlier question"

    @patch("onesupport_api.conversations.get_assistant")
    @patch("onesupport_api.conversations.conversations_table")
    def test_rejects_other_users_conversation(self, mock_table, mock_get_assistant):
        from onesupport_api.conversations import chat
        from onesupport_api.responses import ForbiddenError

        mock_table.get_item = MagicMock(return_value={"Item": stored_conversation(user_id="agent-2")})

        with pytest.raises(ForbiddenError):
            chat({"body": json.dumps({"question": "Hi", "conversation_id": "conv-1"})}, AGENT)
        mock_get_assistant.assert_not_called()

    @patch("onesupport_api.conversations.get_assistant")
    @patch("onesupport_api.conversations.conversations_table")
    def test_manager_cannot_ask_in_other_users_conversation(self, mock_table, mock_get_assistant):
        from onesupport_api.conversations import chat
        from onesupport_api.responses import ForbiddenError

        mock_table.get_item = MagicMock(return_value={"Item": stored_conversation(user_id="agent-1")})
        event = {"body": json.dumps({"question": "Hi", "conversation_id": "conv-1", "user_id": "agent-1"})}

        with pytest.raises(ForbiddenError):
            chat(event, MANAGER)
        mock_get_assistant.assert_not_called()
        mock_table.put_item.assert_not_called()

    @patch("onesupport_api.conversations.get_assistant")
    @patch("onesupport_api.conversations.conversations_table")
    def test_manager_starts_conversation_for_user(self, mock_table, mock_get_assistant):
        from onesupport_api.conversations import chat

        mock_get_assistant.return_value = fake_assistant()

        chat({"body": json.dumps({"question": "Hi", "user_id": "agent-1"})}, MANAGER)

        assert mock_table.put_item.call_args.kwargs["Item"]["user_id"] == "agent-1"

    def test_empty_question(self):
        from onesupport_api.conversations import chat
        from onesupport_api.responses import BadRequestError

        with pytest.raises(BadRequestError):
            chat({"body": json.dumps({"question": "   "})}, AGENT)

    @patch("onesupport_api.conversations.get_assistant")
    @patch("onesupport_api.conversations.conversations_table")
    def test_assistant_failure_is_503(self, mock_table, mock_get_assistant):
        from onesupport_assistant import AssistantError
        from onesupport_api.conversations import chat
        from onesupport_api.responses import ApiError

        assistant = fake_assistant()
        assistant.answer.side_effect = AssistantError("model down")
        mock_get_assistant.return_value = assistant

        with pytest.raises(ApiError) as exc:
            chat({"body": json.dumps({"question": "Hi"})}, AGENT)

        assert exc.value.status_code == 503
        mock_table.put_item.assert_not_called()


class TestHistoryAndLists:
    """Tests for reading conversations."""

    @patch("onesupport_api.conversations.conversations_table")
    def test_history(self, mock_table):
        from onesupport_api.conversations import conversation_history

        messages = [{"id": "m1", "role": "user", "content": "Hi"}]
        mock_table.get_item = MagicMock(return_value={"Item": stored_conversation(messages=messages)})

        body = json.loads(conversation_history({"body": json.dumps({"conversation_id": "conv-1"})}, AGENT)["body"])

        assert body["data"]["messages"] == messages

    @patch("onesupport_api.conversations.conversations_table")
    def test_history_missing(self, mock_table):
        from onesupport_api.conversations import conversation_history
        from onesupport_api.responses import NotFoundError

        mock_table.get_item = MagicMock(return_value={})

        with pytest.raises(NotFoundError):
            conversation_history({"body": json.dumps({"conversation_id": "nope"})}, AGENT)

    @patch("onesupport_api.conversations.conversations_table")
    def test_manager_can_read_history(self, mock_table):
        from onesupport_api.conversations import conversation_history

        mock_table.get_item = MagicMock(return_value={"Item": stored_conversation()})

        response = conversation_history({"body": json.dumps({"conversation_id": "conv-1"})}, MANAGER)

        assert response["statusCode"] == 200

    @patch("onesupport_api.conversations.conversations_table")
    def test_user_list_newest_first(self, mock_table):
        from onesupport_api.conversations import list_user_conversations

        mock_table.query = MagicMock(
            side_effect=[
                {
                    "Items": [{**stored_conversation(), "conversation_id": "a", "updated_at": "2025-01-01"}],
                    "LastEvaluatedKey": {"conversation_id": "a"},
                },
                {"Items": [{**stored_conversation(), "conversation_id": "b", "updated_at": "2025-02-01"}]},
            ]
        )

        body = json.loads(list_user_conversations({}, AGENT)["body"])

        assert [c["conversation_id"] for c in body["data"]["conversations"]] == ["b", "a"]
        assert "messages" not in body["data"]["conversations"][0]
        assert body["data"]["pagination"]["total"] == 2
        assert mock_table.query.call_args_list[1].kwargs["ExclusiveStartKey"] == {"conversation_id": "a"}

    def test_agent_cannot_list_other_user(self):
        from onesupport_api.conversations import list_conversations
        from onesupport_api.responses import ForbiddenError

        with pytest.raises(ForbiddenError):
            list_conversations({"queryStringParameters": {"userId": "agent-2"}}, AGENT)


class TestDeleteAndRename:
    """Tests for changing conversations."""

    @patch("onesupport_api.conversations.conversations_table")
    def test_delete_other_owner(self, mock_table):
        from onesupport_api.conversations import delete_conversation
        from onesupport_api.responses import ForbiddenError

        mock_table.get_item = MagicMock(return_value={"Item": stored_conversation()})

        with pytest.raises(ForbiddenError):
            delete_conversation({"pathParameters": {"conversationId": "conv-1"}}, OTHER)
        mock_table.delete_item.assert_not_called()

    @patch("onesupport_api.conversations.conversations_table")
    def test_delete(self, mock_table):
        from onesupport_api.conversations import delete_conversation

        mock_table.get_item = MagicMock(return_value={"Item": stored_conversation()})

        response = delete_conversation({"pathParameters": {"conversationId": "conv-1"}}, AGENT)

        assert response["statusCode"] == 200
        mock_table.delete_item.assert_called_once_with(Key={"conversation_id": "conv-1"})

    @patch("onesupport_api.conversations.conversations_table")
    def test_rename_trims_and_limits(self, mock_table):
        from onesupport_api.conversations import rename_conversation

        mock_table.get_item = MagicMock(return_value={"Item": stored_conversation()})
        event = {"pathParameters": {"conversationId": "conv-1"}, "body": json.dumps({"title": "  " + "t" * 150})}

        body = json.loads(rename_conversation(event, AGENT)["body"])

        assert body["data"]["title"] == "t" * 100
        assert body["data"]["conversation_id"] == "conv-1"
        assert "updated_at" in body["data"]

    def test_rename_blank(self):
        from onesupport_api.conversations import rename_conversation
        from onesupport_api.responses import BadRequestError

        event = {"pathParameters": {"conversationId": "conv-1"}, "body": json.dumps({"title": "   "})}

        with pytest.raises(BadRequestError):
            rename_conversation(event, AGENT)
