"""
Document storage endpoints and knowledge base sync.

Source documents are PDFs under the raw/ prefix of the documents bucket.
"""

import base64
import binascii
import logging
import os
import uuid

import boto3
from botocore.exceptions import ClientError

from onesupport_assistant.config import AssistantConfig
from onesupport_assistant.indexing import DocumentIndexer

from .config import config
from .conversations import reset_assistant
from .responses import (
    ApiError,
    BadRequestError,
    NotFoundError,
    create_response,
    parse_body,
    path_param,
)
from .security import require_manager

logger = logging.getLogger(__name__)

s3_client = boto3.client("s3", region_name=config.aws_region)

RAW_PREFIX = "raw/"
PDF_CONTENT_TYPE = "application/pdf"
MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def _raw_key(file_name: str) -> str:
    name = os.path.basename((file_name or "").replace("\\", "/")).strip()
    if not name:
        raise BadRequestError("fileName is required")
    return f"{RAW_PREFIX}{name}"


def _is_missing(error: ClientError) -> bool:
    return error.response["Error"]["Code"] in ("NoSuchKey", "404", "NotFound")


def list_raw_files(event: dict, claims: dict) -> dict:
    """List uploaded source documents, newest first."""
    files = []
    try:
        paginator = s3_client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=config.s3_bucket, Prefix=RAW_PREFIX):
            for obj in page.get("Contents", []):
                if obj["Key"].endswith("/"):
                    continue
                files.append(
                    {
                        "Key": obj["Key"],
                        "name": obj["Key"][len(RAW_PREFIX):],
                        "Size": obj.get("Size", 0),
                        "LastModified": obj["LastModified"].isoformat(),
                    }
                )
    except ClientError as e:
        logger.error(f"Failed to list documents: {e}")
        raise ApiError("Failed to list documents") from e

    files.sort(key=lambda f: f["LastModified"], reverse=True)
    return create_response(200, files)


def upload_raw_file(event: dict, claims: dict) -> dict:
    """Upload a base64-encoded PDF."""
    body = parse_body(event)
    key = _raw_key(body.get("fileName"))
    content_type = body.get("contentType") or ""
    if content_type != PDF_CONTENT_TYPE and not key.lower().endswith(".pdf"):
        raise BadRequestError("Only PDF files can be uploaded")

    try:
        data = base64.b64decode(body.get("fileData") or "", validate=True)
    except (binascii.Error, ValueError) as e:
        raise BadRequestError("fileData must be base64 encoded") from e
    if not data:
        raise BadRequestError("fileData is required")
    if len(data) > MAX_UPLOAD_BYTES:
        raise BadRequestError("File exceeds the 10 MB upload limit")

    try:
        s3_client.put_object(
            Bucket=config.s3_bucket,
            Key=key,
            Body=data,
            ContentType=PDF_CONTENT_TYPE,
        )
    except ClientError as e:
        logger.error(f"Failed to upload {key}: {e}")
        raise ApiError("Failed to upload file") from e

    logger.info(f"Uploaded {key} ({len(data)} bytes)")
    return create_response(
        201,
        {"Key": key, "name": key[len(RAW_PREFIX):], "Size": len(data)},
        "File uploaded successfully",
    )


def delete_raw_file(event: dict, claims: dict) -> dict:
    key = _raw_key(path_param(event, "fileName"))
    try:
        s3_client.head_object(Bucket=config.s3_bucket, Key=key)
        s3_client.delete_object(Bucket=config.s3_bucket, Key=key)
    except ClientError as e:
        if _is_missing(e):
            raise NotFoundError(f"File {key} not found") from e
        logger.error(f"Failed to delete {key}: {e}")
        raise ApiError("Failed to delete file") from e

    logger.info(f"Deleted {key}")
    return create_response(200, {"Key": key}, "File deleted successfully")


def presigned_url(event: dict, claims: dict) -> dict:
    key = _raw_key(path_param(event, "fileName"))
    try:
        url = s3_client.generate_presigned_url(
            "get_object",
            Params={"Bucket": config.s3_bucket, "Key": key},
            ExpiresIn=config.presigned_url_expires,
        )
    except ClientError as e:
        logger.error(f"Failed to presign {key}: {e}")
        raise ApiError("Failed to create download link") from e

    return create_response(
        200,
        {"url": url, "fileName": key[len(RAW_PREFIX):], "expiresIn": config.presigned_url_expires},
    )


def kb_sync(event: dict, claims: dict) -> dict:
    """
    Refresh the assistant's knowledge from the raw documents.

    With a managed knowledge base this starts an ingestion job; otherwise
    the local index is rebuilt before responding.
    """
    require_manager(claims)
    assistant_config = AssistantConfig()

    if assistant_config.use_bedrock_kb:
        if not assistant_config.knowledge_base_id or not assistant_config.kb_data_source_id:
            raise ApiError("KNOWLEDGE_BASE_ID and KB_DATA_SOURCE_ID must be configured")
        bedrock_agent = boto3.client("bedrock-agent", region_name=assistant_config.aws_region)
        try:
            response = bedrock_agent.start_ingestion_job(
                knowledgeBaseId=assistant_config.knowledge_base_id,
                dataSourceId=assistant_config.kb_data_source_id,
            )
        except ClientError as e:
            logger.error(f"Failed to start ingestion job: {e}")
            raise ApiError("Failed to start knowledge base sync") from e

        job = response.get("ingestionJob", {})
        logger.info(f"Started ingestion job {job.get('ingestionJobId')}")
        return create_response(
            200,
            {"jobId": job.get("ingestionJobId"), "status": job.get("status"), "mode": "bedrock"},
            "Knowledge base sync started",
        )

    indexer = DocumentIndexer(assistant_config, s3_client=s3_client)
    try:
        report = indexer.build_index()
    except ClientError as e:
        logger.error(f"Failed to rebuild document index: {e}")
        raise ApiError("Failed to rebuild document index") from e

    reset_assistant()

    return create_response(
        200,
        {
            "jobId": f"local-{uuid.uuid4().hex[:12]}",
            "status": "COMPLETE",
            "mode": "local",
            "documents": report.documents,
            "chunks": report.chunks,
            "skipped": report.skipped,
        },
        "Document index rebuilt",
    )
