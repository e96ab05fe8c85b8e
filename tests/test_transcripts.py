"""
Unit tests for call transcripts, case drafting and phone number helpers.
"""

import json
import os
import sys
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

AGENT = {"sub": "agent-1", "userPosition": "user"}


def segment(role, content, offset):
    return {
        "Transcript": {
            "ParticipantId": role.lower(),
            "ParticipantRole": role,
            "Content": content,
            "BeginOffsetMillis": offset,
            "Sentiment": "NEUTRAL",
        }
    }


class TestPhoneNumbers:
    """Tests for phone number parsing."""

    def test_parses_nz_number_and_strips_trunk_zero(self):
        from onesupport_api.phone import parse_phone_number

        assert parse_phone_number("+64 027 387 3920") == ("+64", "273873920")
        assert parse_phone_number("+64273873920") == ("+64", "273873920")

    def test_parses_other_codes(self):
        from onesupport_api.phone import parse_phone_number

        assert parse_phone_number("+61 412 345 678") == ("+61", "412345678")
        assert parse_phone_number("+1 (555) 123-4567") == ("+1", "5551234567")

    def test_local_and_empty_numbers(self):
        from onesupport_api.phone import parse_phone_number

        assert parse_phone_number("027-387-3920") == ("+64", "0273873920")
        assert parse_phone_number("") == ("+64", "")

    def test_format_and_validate(self):
        from onesupport_api.phone import format_phone_number, validate_phone_number

        assert format_phone_number("+64", "273873920") == "+64273873920"
        assert format_phone_number("+64", "") == ""
        assert validate_phone_number("+6421234")
        assert not validate_phone_number("+642123")
        assert validate_phone_number("0211234")
        assert not validate_phone_number("021123")


class TestSegments:
    """Tests for flattening Contact Lens segments."""

    def test_orders_turns_and_renders_text(self):
        from onesupport_api.transcripts import segments_to_turns, transcript_text

        turns = segments_to_turns(
            [
                segment("CUSTOMER", "My door is stuck.", 4000),
                segment("AGENT", "Hello, how can I help?", 1000),
                {"Categories": {"MatchedCategories": []}},
            ]
        )

        assert [t["participant"] for t in turns] == ["Agent", "Customer"]
        assert transcript_text(turns) == "Agent: Hello, how can I help?\nCustomer: My door is stuck."


class TestGetTranscript:
    """Tests for reading transcripts."""

    @patch("onesupport_api.transcripts.config")
    @patch("onesupport_api.transcripts.contact_lens")
    def test_follows_next_token(self, mock_client, mock_config):
        from onesupport_api.transcripts import get_transcript

        mock_config.connect_instance_id = "instance-1"
        mock_client.list_realtime_contact_analysis_segments = MagicMock(
            side_effect=[
                {"Segments": [segment("AGENT", "Hi", 0)], "NextToken": "next"},
                {"Segments": [segment("CUSTOMER", "Hello", 500)]},
            ]
        )

        body = json.loads(get_transcript({"pathParameters": {"contactId": "c-1"}}, AGENT)["body"])

        assert body["data"]["contactId"] == "c-1"
        assert len(body["data"]["turns"]) == 2
        second_call = mock_client.list_realtime_contact_analysis_segments.call_args_list[1]
        assert second_call.kwargs["NextToken"] == "next"
        assert second_call.kwargs["InstanceId"] == "instance-1"

    @patch("onesupport_api.transcripts.config")
    def test_requires_instance_id(self, mock_config):
        from onesupport_api.responses import ApiError
        from onesupport_api.transcripts import get_transcript

        mock_config.connect_instance_id = ""

        with pytest.raises(ApiError) as exc:
            get_transcript({"pathParameters": {"contactId": "c-1"}}, AGENT)
        assert exc.value.status_code == 500

    @patch("onesupport_api.transcripts.config")
    @patch("onesupport_api.transcripts.contact_lens")
    def test_unknown_contact(self, mock_client, mock_config):
        from onesupport_api.responses import NotFoundError
        from onesupport_api.transcripts import get_transcript

        mock_config.connect_instance_id = "instance-1"
        mock_client.list_realtime_contact_analysis_segments.side_effect = ClientError(
            {"Error": {"Code": "ResourceNotFoundException", "Message": "no"}},
            "ListRealtimeContactAnalysisSegments",
        )

        with pytest.raises(NotFoundError):
            get_transcript({"pathParameters": {"contactId": "c-404"}}, AGENT)


class TestGenerateCase:
    """Tests for drafting cases from transcripts."""

    @patch("onesupport_api.transcripts.get_assistant")
    @patch("onesupport_api.transcripts.fetch_transcript")
    def test_builds_case_data(self, mock_fetch, mock_get_assistant):
        from onesupport_api.transcripts import generate_case

        mock_fetch.return_value = {"contactId": "c-1", "turns": [], "text": "Customer: My name is Ana."}
        mock_get_assistant.return_value.extract_case.return_value = {
            "name": "Ana",
            "email": "",
            "product": "",
            "summary": "Stuck door",
            "actions": "",
            "todo": "",
            "priority": "medium",
        }

        event = {"body": json.dumps({"contactId": "c-1", "contactNumber": "+64211234567"})}
        body = json.loads(generate_case(event, AGENT)["body"])
        case_data = body["data"]["caseData"]

        assert case_data["status"] == "pending"
        assert case_data["contactId"] == "c-1"
        assert case_data["contactCode"] == "+64"
        assert case_data["contactNumber"] == "211234567"
        assert case_data["name"] == "Ana"
        assert case_data["priority"] == "medium"
        mock_get_assistant.return_value.extract_case.assert_called_once_with("Customer: My name is Ana.")

    @patch("onesupport_api.transcripts.fetch_transcript")
    def test_empty_transcript(self, mock_fetch):
        from onesupport_api.responses import NotFoundError
        from onesupport_api.transcripts import generate_case

        mock_fetch.return_value = {"contactId": "c-1", "turns": [], "text": ""}

        with pytest.raises(NotFoundError):
            generate_case({"body": json.dumps({"contactId": "c-1"})}, AGENT)

    def test_requires_contact_id(self):
        from onesupport_api.responses import BadRequestError
        from onesupport_api.transcripts import generate_case

        with pytest.raises(BadRequestError):
            generate_case({"body": json.dumps({})}, AGENT)
