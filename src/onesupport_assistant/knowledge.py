"""
Knowledge base retrieval for the OneSupport assistant.

Two modes are supported:
- Bedrock Knowledge Base: retrieval and generation are delegated to the
  managed RetrieveAndGenerate API.
- Local index: the manifest written by DocumentIndexer is searched with
  embeddings, and the best chunks are assembled into a prompt context.
"""

import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Optional

import boto3
from botocore.exceptions import ClientError

from .config import AssistantConfig, STRICT_KB_PROMPT
from .embeddings import BedrockEmbedder, rank_by_similarity
from .errors import AssistantError

logger = logging.getLogger(__name__)

EXCERPT_LENGTH = 300
MIN_PARTIAL_CHUNK = 200


@dataclass
class RetrievedChunk:
    """A chunk of documentation matched to a question."""

    document_id: str
    title: str
    key: str
    page: Optional[int]
    text: str
    score: float

    def to_source(self) -> dict:
        return {
            "title": self.title,
            "key": self.key,
            "page": self.page,
            "score": round(self.score, 3),
            "excerpt": self.text[:EXCERPT_LENGTH],
        }


@dataclass
class GeneratedAnswer:
    """Answer produced by the managed knowledge base."""

    answer: str
    sources: list[dict]


class KnowledgeBase:
    """Document retrieval over the managed knowledge base or the local index."""

    def __init__(
        self,
        config: Optional[AssistantConfig] = None,
        s3_client=None,
        embedder: Optional[BedrockEmbedder] = None,
        agent_runtime=None,
    ):
        self.config = config or AssistantConfig()
        self._s3 = s3_client
        self._embedder = embedder
        self._agent_runtime = agent_runtime
        self._manifest: Optional[dict] = None
        self._chunk_cache: dict[str, list[dict]] = {}

    # Clients are created lazily so the local-only and KB-only paths do not
    # build clients they never use.
    @property
    def s3(self):
        if self._s3 is None:
            self._s3 = boto3.client("s3", region_name=self.config.aws_region)
        return self._s3

    @property
    def embedder(self) -> BedrockEmbedder:
        if self._embedder is None:
            self._embedder = BedrockEmbedder(
                model_id=self.config.embedding_model_id, region=self.config.aws_region
            )
        return self._embedder

    @property
    def agent_runtime(self):
        if self._agent_runtime is None:
            self._agent_runtime = boto3.client(
                "bedrock-agent-runtime", region_name=self.config.aws_region
            )
        return self._agent_runtime

    # =========================================================================
    # Bedrock Knowledge Base
    # =========================================================================

    def retrieve_and_generate(self, question: str) -> GeneratedAnswer:
        """Answer a question with Bedrock Knowledge Base RetrieveAndGenerate."""
        if not self.config.knowledge_base_id:
            raise AssistantError("Knowledge base not configured (KNOWLEDGE_BASE_ID missing)")

        generation: dict[str, Any] = {
            "inferenceConfig": {
                "textInferenceConfig": {
                    "temperature": self.config.temperature,
                    "maxTokens": self.config.max_tokens,
                }
            }
        }
        if self.config.kb_strict_answer:
            generation["promptTemplate"] = {"textPromptTemplate": STRICT_KB_PROMPT}

        try:
            response = self.agent_runtime.retrieve_and_generate(
                input={"text": question},
                retrieveAndGenerateConfiguration={
                    "type": "KNOWLEDGE_BASE",
                    "knowledgeBaseConfiguration": {
                        "knowledgeBaseId": self.config.knowledge_base_id,
                        "modelArn": self.config.model_arn,
                        "retrievalConfiguration": {
                            "vectorSearchConfiguration": {
                                "numberOfResults": self.config.kb_top_k,
                            }
                        },
                        "generationConfiguration": generation,
                    },
                },
            )
        except ClientError as e:
            logger.error(f"Knowledge base query failed: {e}")
            raise AssistantError(f"Knowledge base query failed: {e}") from e

        answer = response.get("output", {}).get("text", "").strip()
        return GeneratedAnswer(
            answer=answer, sources=self._sources_from_citations(response.get("citations", []))
        )

    def _sources_from_citations(self, citations: list[dict]) -> list[dict]:
        sources = []
        seen = set()
        for citation in citations:
            for ref in citation.get("retrievedReferences", []):
                location = ref.get("location", {})
                uri = (
                    location.get("s3Location", {}).get("uri")
                    or location.get("webLocation", {}).get("url")
                    or ""
                )
                if not uri or uri in seen:
                    continue
                seen.add(uri)
                metadata = ref.get("metadata", {}) or {}
                page = metadata.get("x-amz-bedrock-kb-document-page-number")
                sources.append(
                    {
                        "title": os.path.splitext(os.path.basename(uri))[0],
                        "key": uri,
                        "page": int(page) if page is not None else None,
                        "score": None,
                        "excerpt": ref.get("content", {}).get("text", "")[:EXCERPT_LENGTH],
                    }
                )
                if len(sources) >= self.config.top_sources:
                    return sources
        return sources

    # =========================================================================
    # Local index
    # =========================================================================

    def load_manifest(self, refresh: bool = False) -> dict:
        """Load the index manifest; an empty manifest when none exists."""
        if self._manifest is not None and not refresh:
            return self._manifest

        try:
            obj = self.s3.get_object(Bucket=self.config.s3_bucket, Key=self.config.manifest_key)
            self._manifest = json.loads(obj["Body"].read())
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                # Not cached, so a later build is picked up
                logger.warning(f"No index manifest at {self.config.manifest_key}")
                self._manifest = None
                self._chunk_cache.clear()
                return {"documents": []}
            else:
                logger.error(f"Failed to load manifest: {e}")
                raise AssistantError(f"Failed to load manifest: {e}") from e

        self._chunk_cache.clear()
        return self._manifest

    def _load_chunks(self, chunks_key: str) -> list[dict]:
        if chunks_key not in self._chunk_cache:
            obj = self.s3.get_object(Bucket=self.config.s3_bucket, Key=chunks_key)
            chunks = json.loads(obj["Body"].read())
            self._chunk_cache[chunks_key] = chunks[: self.config.max_chunks_per_document]
        return self._chunk_cache[chunks_key]

    def select_documents(self, query_embedding: list[float], documents: list[dict]) -> list[dict]:
        """Pick the documents worth searching chunk by chunk."""
        ranked = rank_by_similarity(query_embedding, [d.get("embedding") for d in documents])
        limit = self.config.max_docs_to_filter
        passing = [
            documents[i]
            for i, score in ranked
            if score >= self.config.document_filter_threshold
        ]
        if passing:
            return passing[:limit]
        return [documents[i] for i, _ in ranked[:limit]]

    def search(self, question: str) -> list[RetrievedChunk]:
        """
        Find the chunks most similar to a question.

        Args:
            question: User question

        Returns:
            Up to top_k chunks scoring at least the similarity threshold,
            best first
        """
        documents = self.load_manifest().get("documents", [])
        if not documents:
            return []

        started = time.monotonic()
        deadline = started + self.config.soft_timeout_ms / 1000.0
        query_embedding = self.embedder.embed(question)

        matches: list[RetrievedChunk] = []
        for doc in self.select_documents(query_embedding, documents):
            if time.monotonic() > deadline:
                logger.warning("Soft timeout reached, returning partial results")
                break
            try:
                chunks = self._load_chunks(doc["chunksKey"])
            except ClientError as e:
                logger.warning(f"Could not load chunks for {doc.get('key')}: {e}")
                continue

            for i, score in rank_by_similarity(query_embedding, [c.get("embedding") for c in chunks]):
                if score < self.config.similarity_threshold:
                    break
                chunk = chunks[i]
                matches.append(
                    RetrievedChunk(
                        document_id=doc.get("documentId", ""),
                        title=doc.get("title", ""),
                        key=doc.get("key", ""),
                        page=chunk.get("page"),
                        text=chunk.get("text", ""),
                        score=score,
                    )
                )

        matches.sort(key=lambda c: c.score, reverse=True)
        logger.info(
            f"Local search found {len(matches)} chunks in "
            f"{(time.monotonic() - started) * 1000:.0f}ms"
        )
        return matches[: self.config.top_k]

    def build_context(self, chunks: list[RetrievedChunk]) -> str:
        """Assemble numbered excerpts up to the maximum context length."""
        limit = self.config.max_context_length
        blocks = []
        used = 0

        for n, chunk in enumerate(chunks, start=1):
            page = f" (p. {chunk.page})" if chunk.page else ""
            header = f"[{n}] {chunk.title}{page}\n"
            block = header + chunk.text
            separator = 2 if blocks else 0
            remaining = limit - used - separator

            if len(block) <= remaining:
                blocks.append(block)
                used += len(block) + separator
                continue
            if remaining - len(header) >= MIN_PARTIAL_CHUNK:
                blocks.append(block[:remaining])
            break

        return "\n\n".join(blocks)

    def sources_for(self, chunks: list[RetrievedChunk]) -> list[dict]:
        """Distinct sources for retrieved chunks, best first."""
        sources = []
        seen = set()
        for chunk in chunks:
            marker = (chunk.key, chunk.page)
            if marker in seen:
                continue
            seen.add(marker)
            sources.append(chunk.to_source())
            if len(sources) >= self.config.top_sources:
                break
        return sources
