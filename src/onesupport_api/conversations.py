"""
Assistant chat endpoints and conversation history.

Conversations are stored in DynamoDB keyed by conversation_id, with a
UserUpdatedIndex GSI (user_id, updated_at) for per-user listings.
"""

import logging
import uuid
from typing import Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from onesupport_assistant import AssistantError, ConversationWindow, SupportAssistant

from .config import config
from .responses import (
    ApiError,
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    create_response,
    get_current_timestamp,
    int_param,
    paginate,
    parse_body,
    path_param,
    query_params,
    to_dynamo,
)
from .security import is_manager

logger = logging.getLogger(__name__)

dynamodb = boto3.resource("dynamodb", region_name=config.aws_region)
conversations_table = dynamodb.Table(config.conversations_table)

USER_INDEX = "UserUpdatedIndex"
TITLE_LENGTH = 50
MAX_TITLE_LENGTH = 100

_assistant: Optional[SupportAssistant] = None


def get_assistant() -> SupportAssistant:
    """Assistant shared across warm invocations."""
    global _assistant
    if _assistant is None:
        _assistant = SupportAssistant()
    return _assistant


def reset_assistant() -> None:
    """Drop the shared assistant so the next request reloads the index."""
    global _assistant
    _assistant = None


def make_title(question: str) -> str:
    question = " ".join(question.split())
    if len(question) <= TITLE_LENGTH:
        return question
    return question[:TITLE_LENGTH].rstrip() + "..."


def _get_conversation(conversation_id: str) -> Optional[dict]:
    try:
        response = conversations_table.get_item(Key={"conversation_id": conversation_id})
    except ClientError as e:
        logger.error(f"Failed to load conversation {conversation_id}: {e}")
        raise ApiError("Failed to load conversation") from e
    return response.get("Item")


def _owned_conversation(conversation_id: str, claims: dict, allow_manager: bool = False) -> dict:
    conversation = _get_conversation(conversation_id)
    if not conversation:
        raise NotFoundError(f"Conversation {conversation_id} not found")
    if conversation.get("user_id") != claims.get("sub") and not (
        allow_manager and is_manager(claims)
    ):
        raise ForbiddenError("Conversation belongs to another user")
    return conversation


def _summary(conversation: dict) -> dict:
    return {
        "conversation_id": conversation["conversation_id"],
        "title": conversation.get("title", ""),
        "updated_at": conversation.get("updated_at"),
        "user_id": conversation.get("user_id"),
    }


def chat(event: dict, claims: dict) -> dict:
    """Answer a question and record both turns in the conversation."""
    body = parse_body(event)
    question = (body.get("question") or "").strip()
    if not question:
        raise BadRequestError("question is required")

    user_id = body.get("user_id") or claims.get("sub")
    if user_id != claims.get("sub") and not is_manager(claims):
        raise ForbiddenError("Cannot ask on behalf of another user")

    conversation_id = body.get("conversation_id")
    conversation = _get_conversation(conversation_id) if conversation_id else None
    timestamp = get_current_timestamp()

    if conversation is None:
        conversation = {
            "conversation_id": conversation_id or str(uuid.uuid4()),
            "user_id": user_id,
            "title": make_title(question),
            "created_at": timestamp,
            "messages": [],
        }
        if body.get("session_id"):
            conversation["session_id"] = body["session_id"]
        logger.info(f"Starting conversation {conversation['conversation_id']} for {user_id}")
    elif conversation.get("user_id") != claims.get("sub"):
        raise ForbiddenError("Conversation belongs to another user")

    assistant = get_assistant()
    history = ConversationWindow.from_stored(
        conversation["messages"], max_messages=assistant.config.history_window
    )
    try:
        result = assistant.answer(question, history)
    except AssistantError as e:
        logger.error(f"Assistant failed: {e}")
        raise ApiError("The assistant could not answer right now", status_code=503) from e

    processed_at = get_current_timestamp()
    message_id = str(uuid.uuid4())
    conversation["messages"].extend(
        [
            {"id": str(uuid.uuid4()), "role": "user", "content": question, "timestamp": timestamp},
            {
                "id": message_id,
                "role": "assistant",
                "content": result.answer,
                "timestamp": processed_at,
                "sources": result.sources,
            },
        ]
    )
    conversation["updated_at"] = processed_at

    try:
        conversations_table.put_item(Item=to_dynamo(conversation))
    except ClientError as e:
        logger.error(f"Failed to save conversation: {e}")
        raise ApiError("Failed to save conversation") from e

    return create_response(
        200,
        {
            "answer": result.answer,
            "conversation_id": conversation["conversation_id"],
            "message_id": message_id,
            "processed_at": processed_at,
            "sources": result.sources,
            "confidence": result.confidence,
        },
    )


def conversation_history(event: dict, claims: dict) -> dict:
    body = parse_body(event)
    conversation_id = body.get("conversation_id")
    if not conversation_id:
        raise BadRequestError("conversation_id is required")
    conversation = _owned_conversation(conversation_id, claims, allow_manager=True)
    return create_response(
        200,
        {
            "conversation_id": conversation_id,
            "title": conversation.get("title", ""),
            "messages": conversation.get("messages", []),
        },
    )


def _list_for_user(user_id: str) -> list[dict]:
    items = []
    query_kwargs = {
        "IndexName": USER_INDEX,
        "KeyConditionExpression": Key("user_id").eq(user_id),
        "ScanIndexForward": False,
    }
    try:
        while True:
            response = conversations_table.query(**query_kwargs)
            items.extend(response.get("Items", []))
            if "LastEvaluatedKey" not in response:
                break
            query_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
    except ClientError as e:
        logger.error(f"Failed to list conversations for {user_id}: {e}")
        raise ApiError("Failed to list conversations") from e
    return items


def _conversation_page(event: dict, user_id: str) -> dict:
    params = query_params(event)
    page = int_param(params, "page", 1)
    limit = int_param(params, "limit", 20, maximum=100)

    conversations = [_summary(c) for c in _list_for_user(user_id)]
    conversations.sort(key=lambda c: c.get("updated_at") or "", reverse=True)
    page_items, pagination = paginate(conversations, page, limit)
    return create_response(200, {"conversations": page_items, "pagination": pagination})


def list_conversations(event: dict, claims: dict) -> dict:
    """List a user's conversations; managers may list anyone's."""
    user_id = query_params(event).get("userId") or claims.get("sub")
    if user_id != claims.get("sub") and not is_manager(claims):
        raise ForbiddenError("Cannot list another user's conversations")
    return _conversation_page(event, user_id)


def list_user_conversations(event: dict, claims: dict) -> dict:
    return _conversation_page(event, claims.get("sub"))


def delete_conversation(event: dict, claims: dict) -> dict:
    conversation_id = path_param(event, "conversationId")
    _owned_conversation(conversation_id, claims)

    try:
        conversations_table.delete_item(Key={"conversation_id": conversation_id})
    except ClientError as e:
        logger.error(f"Failed to delete conversation {conversation_id}: {e}")
        raise ApiError("Failed to delete conversation") from e

    logger.info(f"Deleted conversation {conversation_id}")
    return create_response(200, {"conversation_id": conversation_id}, "Conversation deleted")


def rename_conversation(event: dict, claims: dict) -> dict:
    conversation_id = path_param(event, "conversationId")
    title = " ".join((parse_body(event).get("title") or "").split())
    if not title:
        raise BadRequestError("title is required")
    title = title[:MAX_TITLE_LENGTH]

    _owned_conversation(conversation_id, claims)
    updated_at = get_current_timestamp()
    try:
        conversations_table.update_item(
            Key={"conversation_id": conversation_id},
            UpdateExpression="SET title = :title, updated_at = :updated_at",
            ExpressionAttributeValues={":title": title, ":updated_at": updated_at},
            ConditionExpression="attribute_exists(conversation_id)",
        )
    except ClientError as e:
        if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
            raise NotFoundError(f"Conversation {conversation_id} not found") from e
        logger.error(f"Failed to rename conversation {conversation_id}: {e}")
        raise ApiError("Failed to rename conversation") from e

    return create_response(
        200,
        {"conversation_id": conversation_id, "title": title, "updated_at": updated_at},
        "Conversation renamed",
    )
