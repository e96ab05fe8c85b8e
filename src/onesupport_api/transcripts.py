"""
Call transcripts from Amazon Connect Contact Lens, and case drafting from them.
"""

import logging

import boto3
from botocore.exceptions import ClientError

from onesupport_assistant import AssistantError

from .config import config
from .conversations import get_assistant
from .phone import parse_phone_number
from .responses import ApiError, BadRequestError, NotFoundError, create_response, parse_body, path_param

logger = logging.getLogger(__name__)

contact_lens = boto3.client("connect-contact-lens", region_name=config.aws_region)

PAGE_SIZE = 100
PARTICIPANT_NAMES = {"AGENT": "Agent", "CUSTOMER": "Customer", "SYSTEM": "System"}


def segments_to_turns(segments: list[dict]) -> list[dict]:
    """Flatten Contact Lens segments into ordered transcript turns."""
    turns = []
    for segment in segments:
        transcript = segment.get("Transcript")
        if not transcript or not transcript.get("Content"):
            continue
        role = transcript.get("ParticipantRole") or transcript.get("ParticipantId", "")
        turns.append(
            {
                "participant": PARTICIPANT_NAMES.get(role.upper(), role.title()),
                "content": transcript["Content"].strip(),
                "beginOffsetMillis": transcript.get("BeginOffsetMillis", 0),
                "sentiment": transcript.get("Sentiment"),
            }
        )
    turns.sort(key=lambda t: t["beginOffsetMillis"])
    return turns


def transcript_text(turns: list[dict]) -> str:
    return "\n".join(f"{t['participant']}: {t['content']}" for t in turns)


def fetch_transcript(contact_id: str) -> dict:
    """Read every real-time analysis segment for a contact."""
    if not config.connect_instance_id:
        raise ApiError("CONNECT_INSTANCE_ID is not configured")

    segments = []
    kwargs = {
        "InstanceId": config.connect_instance_id,
        "ContactId": contact_id,
        "MaxResults": PAGE_SIZE,
    }
    try:
        while True:
            response = contact_lens.list_realtime_contact_analysis_segments(**kwargs)
            segments.extend(response.get("Segments", []))
            if not response.get("NextToken"):
                break
            kwargs["NextToken"] = response["NextToken"]
    except ClientError as e:
        if e.response["Error"]["Code"] == "ResourceNotFoundException":
            raise NotFoundError(f"No transcript found for contact {contact_id}") from e
        logger.error(f"Failed to read transcript for {contact_id}: {e}")
        raise ApiError("Failed to get transcript") from e

    turns = segments_to_turns(segments)
    logger.info(f"Transcript for {contact_id}: {len(turns)} turns")
    return {"contactId": contact_id, "turns": turns, "text": transcript_text(turns)}


def get_transcript(event: dict, claims: dict) -> dict:
    return create_response(200, fetch_transcript(path_param(event, "contactId")))


def generate_case(event: dict, claims: dict) -> dict:
    """Draft case fields for a finished call."""
    body = parse_body(event)
    contact_id = (body.get("contactId") or "").strip()
    if not contact_id:
        raise BadRequestError("contactId is required")

    transcript = fetch_transcript(contact_id)
    if not transcript["text"]:
        raise NotFoundError(f"Transcript for contact {contact_id} is empty")

    try:
        fields = get_assistant().extract_case(transcript["text"])
    except AssistantError as e:
        logger.error(f"Case extraction failed for {contact_id}: {e}")
        raise ApiError("Failed to generate case from transcript", status_code=503) from e

    contact_code, contact_number = parse_phone_number(body.get("contactNumber") or "")
    case_data = {
        "status": "pending",
        "contactId": contact_id,
        "contactCode": contact_code,
        "contactNumber": contact_number,
        **fields,
    }
    return create_response(200, {"caseData": case_data, "transcript": transcript})
