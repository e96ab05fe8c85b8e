"""
Configuration for the OneSupport retrieval assistant.
"""

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {value!r}, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Invalid number for {name}: {value!r}, using {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    return os.environ.get(name, "true" if default else "false").lower() == "true"


@dataclass
class AssistantConfig:
    """Configuration for document retrieval and answer generation."""

    # AWS Configuration
    aws_region: str = field(
        default_factory=lambda: os.environ.get("AWS_REGION", "ap-southeast-2")
    )

    # Bedrock Models
    embedding_model_id: str = field(
        default_factory=lambda: os.environ.get(
            "MODEL_ID_EMBED", "amazon.titan-embed-text-v2:0"
        )
    )
    chat_model_id: str = field(
        default_factory=lambda: os.environ.get(
            "MODEL_ID_CLAUDE", "anthropic.claude-3-haiku-20240307-v1:0"
        )
    )

    # Bedrock Knowledge Base
    use_bedrock_kb: bool = field(default_factory=lambda: _env_bool("USE_BEDROCK_KB", False))
    knowledge_base_id: str = field(
        default_factory=lambda: os.environ.get("KNOWLEDGE_BASE_ID", "")
    )
    kb_data_source_id: str = field(
        default_factory=lambda: os.environ.get("KB_DATA_SOURCE_ID", "")
    )
    kb_model_arn: str = field(default_factory=lambda: os.environ.get("KB_MODEL_ARN", ""))
    kb_top_k: int = field(default_factory=lambda: _env_int("KB_TOP_K", 8))
    kb_strict_answer: bool = field(
        default_factory=lambda: _env_bool("KB_STRICT_ANSWER", True)
    )
    temperature: float = field(default_factory=lambda: _env_float("KB_TEMPERATURE", 0.1))
    max_tokens: int = field(default_factory=lambda: _env_int("KB_MAX_TOKENS", 800))

    # Local retrieval
    top_k: int = field(default_factory=lambda: _env_int("TOP_K", 5))
    similarity_threshold: float = field(
        default_factory=lambda: _env_float("SIMILARITY_THRESHOLD", 0.4)
    )
    document_filter_threshold: float = field(
        default_factory=lambda: _env_float("DOCUMENT_FILTER_THRESHOLD", 0.3)
    )
    max_docs_to_filter: int = field(
        default_factory=lambda: _env_int("MAX_DOCS_TO_FILTER", 8)
    )
    max_chunks_per_document: int = field(
        default_factory=lambda: _env_int("MAX_CHUNKS_PER_DOCUMENT", 100)
    )
    max_context_length: int = field(
        default_factory=lambda: _env_int("MAX_CONTEXT_LENGTH", 6000)
    )
    top_sources: int = field(default_factory=lambda: _env_int("TOP_SOURCES", 5))
    soft_timeout_ms: int = field(default_factory=lambda: _env_int("SOFT_TIMEOUT_MS", 20000))

    # PDF processing
    chunk_size: int = field(default_factory=lambda: _env_int("CHUNK_SIZE", 1000))
    chunk_overlap: int = field(default_factory=lambda: _env_int("CHUNK_OVERLAP", 200))
    min_chunk_len: int = field(default_factory=lambda: _env_int("MIN_CHUNK_LEN", 80))

    # Document storage
    s3_bucket: str = field(
        default_factory=lambda: os.environ.get("S3_BUCKET", "customer-service-docs")
    )
    raw_prefix: str = field(default_factory=lambda: os.environ.get("RAW_PREFIX", "raw/"))
    manifest_key: str = field(
        default_factory=lambda: os.environ.get("MANIFEST_KEY", "index/manifest.json")
    )

    # Conversation memory
    history_window: int = field(default_factory=lambda: _env_int("HISTORY_WINDOW", 10))

    @property
    def model_arn(self) -> str:
        """Model ARN used by Knowledge Base RetrieveAndGenerate."""
        if self.kb_model_arn:
            return self.kb_model_arn
        return f"arn:aws:bedrock:{self.aws_region}::foundation-model/{self.chat_model_id}"


# System prompts
SYSTEM_PROMPT = """You are OneSupport, an assistant for customer support agents who handle
questions about windows and doors (exterior, interior and patio).

## Guidelines
- Answer using the documentation excerpts provided in the context
- Cite excerpts by their number, e.g. [1], when you rely on them
- Keep answers short and practical so an agent can read them out on a call
- If the excerpts do not contain the answer, say so plainly
- Never invent product names, measurements, prices or warranty terms
"""

STRICT_KB_PROMPT = """You are a question answering agent for customer support staff.
Answer the user's question using only the information in the search results below.
If the search results do not contain the answer, reply that the information
could not be found in the documentation. Do not use outside knowledge.

Here are the search results in numbered order:
$search_results$

$output_format_instructions$"""

NO_CONTEXT_ANSWER = (
    "I couldn't find this in the product documentation. "
    "Please check the document library or escalate the question to a manager."
)

CASE_EXTRACTION_PROMPT = """Read the following phone call transcript between a customer and a
support agent and extract the details needed to open a support case.

Transcript:
{transcript}

Respond with a single JSON object with exactly these string keys:
"name" (customer name), "email", "product" (product concerned),
"summary" (summary of the issue), "actions" (actions already taken on the call),
"todo" (next steps), "priority" (one of low, medium, high, urgent).
Use an empty string for anything not mentioned. Respond with JSON only."""
