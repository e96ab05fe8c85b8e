"""
Local document index for the OneSupport assistant.

Reads product PDFs from the raw folder of the document bucket, splits them
into chunks, embeds every chunk and writes the chunk files plus a manifest
back to the bucket. The knowledge base reads the manifest at query time.
"""

import hashlib
import io
import json
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import boto3
from botocore.exceptions import ClientError
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from .chunking import chunk_text
from .config import AssistantConfig
from .embeddings import BedrockEmbedder, mean_vector
from .errors import AssistantError

logger = logging.getLogger(__name__)

MANIFEST_VERSION = 1
CHUNKS_PREFIX = "index/chunks/"


@dataclass
class IndexReport:
    """Summary of an indexing run."""

    documents: int = 0
    chunks: int = 0
    skipped: list[str] = field(default_factory=list)


def document_id_for(key: str) -> str:
    """
    Stable document id derived from an object key.

    A readable slug of the file name plus a short hash of the full key, so
    names that slug the same still get their own chunk files.
    """
    stem = os.path.splitext(os.path.basename(key))[0]
    slug = re.sub(r"[^A-Za-z0-9_-]+", "-", stem).strip("-").lower() or "document"
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:8]
    return f"{slug}-{digest}"


def extract_pdf_pages(data: bytes) -> list[tuple[int, str]]:
    """Extract (page_number, text) pairs from PDF bytes, skipping empty pages."""
    reader = PdfReader(io.BytesIO(data))
    pages = []
    for page_num, page in enumerate(reader.pages, start=1):
        text = page.extract_text() or ""
        if text.strip():
            pages.append((page_num, text))
    return pages


class DocumentIndexer:
    """Builds the chunk index and manifest for documents in S3."""

    def __init__(
        self,
        config: Optional[AssistantConfig] = None,
        s3_client=None,
        embedder: Optional[BedrockEmbedder] = None,
    ):
        self.config = config or AssistantConfig()
        self.s3 = s3_client or boto3.client("s3", region_name=self.config.aws_region)
        self.embedder = embedder or BedrockEmbedder(
            model_id=self.config.embedding_model_id, region=self.config.aws_region
        )

    def list_raw_documents(self) -> list[str]:
        """List PDF keys under the raw prefix."""
        keys = []
        paginator = self.s3.get_paginator("list_objects_v2")
        for page in paginator.paginate(
            Bucket=self.config.s3_bucket, Prefix=self.config.raw_prefix
        ):
            for obj in page.get("Contents", []):
                key = obj["Key"]
                if key.lower().endswith(".pdf"):
                    keys.append(key)
        return sorted(keys)

    def build_chunks(self, key: str, data: bytes) -> list[dict]:
        """Chunk and embed a single PDF."""
        doc_id = document_id_for(key)
        records = []
        for page_num, text in extract_pdf_pages(data):
            for chunk in chunk_text(
                text,
                chunk_size=self.config.chunk_size,
                overlap=self.config.chunk_overlap,
                min_len=self.config.min_chunk_len,
            ):
                if len(records) >= self.config.max_chunks_per_document:
                    logger.warning(
                        f"{key}: chunk limit {self.config.max_chunks_per_document} reached"
                    )
                    return records
                records.append(
                    {
                        "id": f"{doc_id}-{len(records):04d}",
                        "text": chunk,
                        "page": page_num,
                        "embedding": self.embedder.embed(chunk),
                    }
                )
        return records

    def index_document(self, key: str) -> Optional[dict]:
        """
        Index one document and return its manifest entry.

        Returns None when the document cannot be read or has no text.
        """
        try:
            obj = self.s3.get_object(Bucket=self.config.s3_bucket, Key=key)
            data = obj["Body"].read()
            chunks = self.build_chunks(key, data)
        except (PdfReadError, ValueError) as e:
            logger.warning(f"Skipping unreadable document {key}: {e}")
            return None
        except AssistantError as e:
            logger.warning(f"Skipping {key}, embedding failed: {e}")
            return None

        if not chunks:
            logger.warning(f"Skipping {key}: no extractable text")
            return None

        doc_id = document_id_for(key)
        chunks_key = f"{CHUNKS_PREFIX}{doc_id}.json"
        self.s3.put_object(
            Bucket=self.config.s3_bucket,
            Key=chunks_key,
            Body=json.dumps(chunks),
            ContentType="application/json",
        )
        logger.info(f"Indexed {key}: {len(chunks)} chunks -> {chunks_key}")

        return {
            "documentId": doc_id,
            "key": key,
            "title": os.path.splitext(os.path.basename(key))[0],
            "chunksKey": chunks_key,
            "chunkCount": len(chunks),
            "embedding": mean_vector([c["embedding"] for c in chunks]),
        }

    def build_index(self) -> IndexReport:
        """Index every raw document and write the manifest."""
        report = IndexReport()
        entries = []

        for key in self.list_raw_documents():
            try:
                entry = self.index_document(key)
            except ClientError as e:
                logger.error(f"Failed to index {key}: {e}")
                entry = None
            if entry is None:
                report.skipped.append(key)
                continue
            entries.append(entry)
            report.documents += 1
            report.chunks += entry["chunkCount"]

        manifest = {
            "version": MANIFEST_VERSION,
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            "embeddingModel": self.config.embedding_model_id,
            "documents": entries,
        }
        self.s3.put_object(
            Bucket=self.config.s3_bucket,
            Key=self.config.manifest_key,
            Body=json.dumps(manifest),
            ContentType="application/json",
        )
        logger.info(
            f"Wrote manifest with {report.documents} documents, {report.chunks} chunks"
        )
        return report
