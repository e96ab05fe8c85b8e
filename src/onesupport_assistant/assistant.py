"""
OneSupport Assistant - answer generation

Answers agent questions from product documentation and turns call
transcripts into draft support cases, using models hosted on Amazon Bedrock.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from .config import (
    AssistantConfig,
    CASE_EXTRACTION_PROMPT,
    NO_CONTEXT_ANSWER,
    SYSTEM_PROMPT,
)
from .errors import AssistantError
from .knowledge import KnowledgeBase
from .memory import ConversationWindow

logger = logging.getLogger(__name__)

CASE_FIELDS = ("name", "email", "product", "summary", "actions", "todo", "priority")
PRIORITIES = ("low", "medium", "high", "urgent")


@dataclass
class AnswerResult:
    """Answer to a user question."""

    answer: str
    sources: list[dict] = field(default_factory=list)
    confidence: float = 0.0
    mode: str = "local"


def _first_json_object(text: str) -> Optional[dict]:
    """Parse the first JSON object embedded in model output."""
    start = text.find("{")
    while start != -1:
        depth = 0
        for pos in range(start, len(text)):
            if text[pos] == "{":
                depth += 1
            elif text[pos] == "}":
                depth -= 1
                if depth == 0:
                    try:
                        parsed = json.loads(text[start : pos + 1])
                    except json.JSONDecodeError:
                        break
                    if isinstance(parsed, dict):
                        return parsed
                    break
        start = text.find("{", start + 1)
    return None


class SupportAssistant:
    """
    Retrieval-augmented assistant for support agents.

    Uses the managed Bedrock Knowledge Base when enabled, otherwise searches
    the local document index and calls the chat model directly.
    """

    def __init__(
        self,
        config: Optional[AssistantConfig] = None,
        knowledge: Optional[KnowledgeBase] = None,
        bedrock_runtime=None,
    ):
        """
        Initialize the assistant.

        Args:
            config: Assistant configuration (uses defaults if not provided)
            knowledge: Knowledge base used for retrieval
            bedrock_runtime: Bedrock runtime client
        """
        self.config = config or AssistantConfig()
        self.knowledge = knowledge or KnowledgeBase(self.config)
        self.bedrock_runtime = bedrock_runtime or boto3.client(
            "bedrock-runtime", region_name=self.config.aws_region
        )

    def _invoke_model(
        self,
        messages: list[dict],
        system: str = SYSTEM_PROMPT,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Invoke the chat model and return its text output.

        Args:
            messages: Conversation messages ({"role", "content"})
            system: System prompt
            max_tokens: Output token limit
            temperature: Sampling temperature

        Returns:
            Generated text
        """
        model_id = self.config.chat_model_id
        max_tokens = max_tokens or self.config.max_tokens
        temperature = self.config.temperature if temperature is None else temperature

        # Build request body based on model type
        if "anthropic" in model_id.lower():
            body = {
                "anthropic_version": "bedrock-2023-05-31",
                "max_tokens": max_tokens,
                "temperature": temperature,
                "system": system,
                "messages": [
                    {"role": m["role"], "content": [{"type": "text", "text": m["content"]}]}
                    for m in messages
                ],
            }
        else:  # Titan or other models
            # Flatten messages to text prompt
            prompt_parts = [system]
            for msg in messages:
                role = "User" if msg["role"] == "user" else "Assistant"
                prompt_parts.append(f"{role}: {msg['content']}")
            body = {
                "inputText": "\n".join(prompt_parts) + "\nAssistant:",
                "textGenerationConfig": {
                    "maxTokenCount": max_tokens,
                    "temperature": temperature,
                    "topP": 0.9,
                },
            }

        try:
            response = self.bedrock_runtime.invoke_model(
                modelId=model_id,
                body=json.dumps(body),
            )
        except ClientError as e:
            logger.error(f"Model invocation error: {e}")
            raise AssistantError(f"Model invocation failed: {e}") from e

        response_body = json.loads(response["body"].read())

        # Parse response based on model
        if "anthropic" in model_id.lower():
            return "".join(
                block.get("text", "")
                for block in response_body.get("content", [])
                if block.get("type") == "text"
            ).strip()
        return response_body.get("results", [{}])[0].get("outputText", "").strip()

    def answer(
        self,
        question: str,
        history: Optional[ConversationWindow] = None,
    ) -> AnswerResult:
        """
        Answer a question from the product documentation.

        Args:
            question: The agent's question
            history: Recent conversation turns

        Returns:
            AnswerResult with answer text, sources and confidence
        """
        question = (question or "").strip()
        if not question:
            raise AssistantError("Question is empty")

        if self.config.use_bedrock_kb:
            generated = self.knowledge.retrieve_and_generate(question)
            return AnswerResult(
                answer=generated.answer or NO_CONTEXT_ANSWER,
                sources=generated.sources,
                confidence=1.0 if generated.sources else 0.0,
                mode="bedrock-kb",
            )

        try:
            chunks = self.knowledge.search(question)
        except AssistantError as e:
            logger.warning(f"Retrieval failed, answering without context: {e}")
            chunks = []

        if not chunks and self.config.kb_strict_answer:
            logger.info("No matching documentation, returning fallback answer")
            return AnswerResult(answer=NO_CONTEXT_ANSWER, mode="local")

        context = self.knowledge.build_context(chunks)
        if context:
            prompt = (
                f"Documentation excerpts:\n\n{context}\n\n"
                f"Question: {question}"
            )
        else:
            prompt = question

        messages = history.get_context() if history else []
        messages.append({"role": "user", "content": prompt})
        # Alternation may break when history ends with a user turn
        if len(messages) > 1 and messages[-2]["role"] == "user":
            previous = messages.pop(-2)
            messages[-1]["content"] = previous["content"] + "\n\n" + messages[-1]["content"]

        answer = self._invoke_model(messages)
        confidence = round(max((c.score for c in chunks), default=0.0), 3)
        return AnswerResult(
            answer=answer or NO_CONTEXT_ANSWER,
            sources=self.knowledge.sources_for(chunks),
            confidence=confidence,
            mode="local",
        )

    def extract_case(self, transcript_text: str) -> dict:
        """
        Draft support case fields from a call transcript.

        Args:
            transcript_text: Transcript as "Participant: text" lines

        Returns:
            Dictionary with every case field as a string
        """
        fields = {name: "" for name in CASE_FIELDS}
        if not transcript_text.strip():
            return fields

        prompt = CASE_EXTRACTION_PROMPT.format(transcript=transcript_text)
        output = self._invoke_model(
            [{"role": "user", "content": prompt}],
            system="You extract structured support case data from call transcripts.",
            temperature=0.0,
        )

        parsed = _first_json_object(output)
        if parsed is None:
            logger.warning("Case extraction returned no JSON object")
            return fields

        for name in CASE_FIELDS:
            value = parsed.get(name)
            if isinstance(value, list):
                value = "\n".join(str(v) for v in value)
            fields[name] = str(value).strip() if value is not None else ""

        priority = fields["priority"].lower()
        fields["priority"] = priority if priority in PRIORITIES else ""
        fields["email"] = fields["email"] if re.match(r"[^@\s]+@[^@\s]+", fields["email"]) else ""
        return fields
