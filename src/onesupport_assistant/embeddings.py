"""
Embedding generation and vector similarity.
"""

import json
import logging
from typing import Optional, Sequence

import boto3
import numpy as np
from botocore.exceptions import ClientError

from .errors import AssistantError

logger = logging.getLogger(__name__)

# Titan v2 accepts up to 8k tokens; characters are a safe proxy
MAX_EMBED_CHARS = 8000


class BedrockEmbedder:
    """Generates text embeddings with an Amazon Titan embedding model."""

    def __init__(
        self,
        model_id: str = "amazon.titan-embed-text-v2:0",
        region: str = "ap-southeast-2",
        bedrock_runtime=None,
    ):
        self.model_id = model_id
        self.bedrock_runtime = bedrock_runtime or boto3.client(
            "bedrock-runtime", region_name=region
        )

    def embed(self, text: str) -> list[float]:
        """Generate an embedding for text."""
        text = (text or "").strip()
        if not text:
            raise AssistantError("Cannot embed empty text")

        body = json.dumps({"inputText": text[:MAX_EMBED_CHARS], "normalize": True})
        try:
            response = self.bedrock_runtime.invoke_model(
                modelId=self.model_id,
                body=body,
                contentType="application/json",
                accept="application/json",
            )
        except ClientError as e:
            logger.error(f"Embedding error: {e}")
            raise AssistantError(f"Failed to generate embedding: {e}") from e

        response_body = json.loads(response["body"].read())
        embedding = response_body.get("embedding", [])
        if not embedding:
            raise AssistantError("Embedding model returned no vector")
        return [float(v) for v in embedding]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either is empty or zero."""
    if a is None or b is None or len(a) == 0 or len(b) == 0 or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def rank_by_similarity(
    query: Sequence[float],
    vectors: Sequence[Optional[Sequence[float]]],
) -> list[tuple[int, float]]:
    """
    Rank vectors by cosine similarity to a query vector.

    Args:
        query: Query embedding
        vectors: Candidate embeddings; empty or missing entries score 0.0

    Returns:
        (index, score) pairs sorted by descending score
    """
    scored = [
        (i, cosine_similarity(query, v) if v else 0.0) for i, v in enumerate(vectors)
    ]
    scored.sort(key=lambda item: item[1], reverse=True)
    return scored


def mean_vector(vectors: Sequence[Sequence[float]]) -> list[float]:
    """Unit-normalised mean of a set of vectors."""
    if not vectors:
        return []
    mean = np.mean(np.asarray(vectors, dtype=float), axis=0)
    norm = np.linalg.norm(mean)
    if norm == 0:
        return mean.tolist()
    return (mean / norm).tolist()
