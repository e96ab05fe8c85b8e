"""
Support case endpoints.

Cases live in DynamoDB keyed by caseId, with two GSIs:
- StatusCreatedAtIndex (status, createdAt) for status and alert listings
- ContactNumberIndex (contactNumber) for caller lookup
"""

import logging
import uuid
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from .config import config
from .phone import clean_phone_number, parse_phone_number, validate_phone_number
from .responses import (
    ApiError,
    BadRequestError,
    ConflictError,
    NotFoundError,
    bool_param,
    create_response,
    get_current_timestamp,
    int_param,
    parse_body,
    path_param,
    query_params,
    scan_all,
    to_dynamo,
)

logger = logging.getLogger(__name__)

dynamodb = boto3.resource("dynamodb", region_name=config.aws_region)
cases_table = dynamodb.Table(config.cases_table)

STATUS_INDEX = "StatusCreatedAtIndex"
PHONE_INDEX = "ContactNumberIndex"

STATUS_MAP = {
    "pending": "pending",
    "open": "pending",
    "active": "pending",
    "closed": "closed",
    "resolved": "closed",
    "cancelled": "closed",
    "alert": "alert",
}
PRIORITIES = ("low", "medium", "high", "urgent")
CASE_FIELDS = (
    "status",
    "priority",
    "name",
    "contactCode",
    "contactNumber",
    "email",
    "product",
    "summary",
    "actions",
    "todo",
    "contactId",
)
SEARCH_FIELDS = ("caseId", "name", "email", "product", "summary")
MAX_SEARCH_RESULTS = 50
DASHBOARD_DEFAULT_DAYS = 30


def generate_case_id() -> str:
    """Generate a unique case ID."""
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d")
    unique_id = uuid.uuid4().hex[:8].upper()
    return f"CS-{timestamp}-{unique_id}"


def normalize_status(value: Optional[str]) -> str:
    status = STATUS_MAP.get((value or "").strip().lower())
    if status is None:
        raise BadRequestError(f"Unknown case status: {value}")
    return status


def normalize_priority(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    priority = value.strip().lower()
    if priority not in PRIORITIES:
        raise BadRequestError(f"priority must be one of: {', '.join(PRIORITIES)}")
    return priority


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def should_case_be_alerted(case: dict, now: Optional[datetime] = None) -> bool:
    """A case needs attention when it is still open past the alert threshold."""
    if not case or not case.get("createdAt"):
        return False
    if str(case.get("status", "")).lower() == "closed":
        return False
    created = _parse_timestamp(case["createdAt"])
    if created is None:
        return False
    now = now or datetime.now(timezone.utc)
    return now - created >= timedelta(hours=config.alert_threshold_hours)


def _case_fields(body: dict) -> dict:
    """Validated case attributes present in a request body."""
    fields: dict[str, Any] = {}
    for name in CASE_FIELDS:
        if name not in body or body[name] is None:
            continue
        value = body[name]
        if name == "status":
            value = normalize_status(value)
        elif name == "priority":
            value = normalize_priority(value)
            if value is None:
                continue
        elif isinstance(value, str):
            value = value.strip()
        fields[name] = value

    number = fields.get("contactNumber")
    if isinstance(number, str) and number.startswith("+"):
        fields["contactCode"], fields["contactNumber"] = parse_phone_number(number)
    elif isinstance(number, str):
        fields["contactNumber"] = clean_phone_number(number)
    if "email" in fields:
        fields["email"] = str(fields["email"]).lower()
    return fields


def _edit_entries(body: dict, agent_id: str) -> list[dict]:
    entries = body.get("editHistory") or []
    if not isinstance(entries, list):
        raise BadRequestError("editHistory must be a list")

    cleaned = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise BadRequestError("editHistory entries must be objects")
        try:
            hours = float(entry.get("workingTimeHours", 0) or 0)
        except (TypeError, ValueError) as e:
            raise BadRequestError("workingTimeHours must be a number") from e
        cleaned.append(
            {
                "startTime": entry.get("startTime") or get_current_timestamp(),
                "endTime": entry.get("endTime") or get_current_timestamp(),
                "workingTimeHours": max(hours, 0.0),
                "agentId": entry.get("agentId") or agent_id,
            }
        )
    return cleaned


def _get_case_item(case_id: str) -> dict:
    response = cases_table.get_item(Key={"caseId": case_id})
    item = response.get("Item")
    if not item:
        raise NotFoundError(f"Case {case_id} not found")
    return item


def create_case(event: dict, claims: dict) -> dict:
    """Create a new support case."""
    body = parse_body(event)
    fields = _case_fields(body)
    if not fields.get("name"):
        raise BadRequestError("Missing required fields: name")

    timestamp = get_current_timestamp()
    case = {
        "caseId": generate_case_id(),
        "status": "pending",
        "contactCode": "+64",
        **fields,
        "agentId": claims.get("sub"),
        "createdAt": timestamp,
        "updatedAt": timestamp,
        "editHistory": [],
        "statusHistory": [],
    }
    # Remove empty values
    case = {k: v for k, v in case.items() if v is not None and v != ""}

    try:
        cases_table.put_item(Item=to_dynamo(case))
    except ClientError as e:
        logger.error(f"Failed to create case: {e}")
        raise ApiError("Failed to create case") from e

    logger.info(f"Created case: {case['caseId']}")
    return create_response(201, case, "Case created successfully")


def get_case(event: dict, claims: dict) -> dict:
    case_id = path_param(event, "caseId")
    return create_response(200, _get_case_item(case_id))


def update_case(event: dict, claims: dict) -> dict:
    """
    Update an existing case.

    When the body carries oldStatus, the update only applies if the stored
    status still matches it, so two agents cannot silently overwrite each
    other's status change.
    """
    case_id = path_param(event, "caseId")
    body = parse_body(event)
    agent_id = claims.get("sub")

    fields = _case_fields(body)
    edits = _edit_entries(body, agent_id)
    if not fields and not edits:
        raise BadRequestError("No valid fields to update")

    old_status = normalize_status(body["oldStatus"]) if body.get("oldStatus") else None
    if "status" in fields and old_status is None:
        old_status = normalize_status(_get_case_item(case_id).get("status", "pending"))

    timestamp = get_current_timestamp()
    update_parts = []
    names: dict[str, str] = {}
    values: dict[str, Any] = {}

    for name, value in fields.items():
        update_parts.append(f"#{name} = :{name}")
        names[f"#{name}"] = name
        values[f":{name}"] = value

    if edits:
        update_parts.append("editHistory = list_append(if_not_exists(editHistory, :empty_list), :edits)")
        values[":edits"] = edits
        values[":empty_list"] = []

    if "status" in fields and fields["status"] != old_status:
        update_parts.append(
            "statusHistory = list_append(if_not_exists(statusHistory, :empty_list), :status_change)"
        )
        values[":status_change"] = [
            {"from": old_status, "to": fields["status"], "changedAt": timestamp, "agentId": agent_id}
        ]
        values[":empty_list"] = []

    # Always update timestamp
    update_parts.append("#updatedAt = :updated_at")
    names["#updatedAt"] = "updatedAt"
    values[":updated_at"] = timestamp

    condition = "attribute_exists(caseId)"
    if body.get("oldStatus"):
        condition += " AND #status = :expected_status"
        names["#status"] = "status"
        values[":expected_status"] = old_status

    try:
        response = cases_table.update_item(
            Key={"caseId": case_id},
            UpdateExpression="SET " + ", ".join(update_parts),
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=to_dynamo(values),
            ConditionExpression=condition,
            ReturnValues="ALL_NEW",
        )
    except ClientError as e:
        if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
            current = _get_case_item(case_id)
            raise ConflictError(
                f"Case {case_id} status changed to {current.get('status')} by another update"
            ) from e
        logger.error(f"Failed to update case: {e}")
        raise ApiError("Failed to update case") from e

    logger.info(f"Updated case: {case_id}")
    return create_response(200, response["Attributes"], "Case updated successfully")


def list_cases(event: dict, claims: dict) -> dict:
    """List cases one scan page at a time."""
    params = query_params(event)
    limit = int_param(params, "limit", 10, maximum=100)
    asc = bool_param(params, "asc")

    scan_kwargs: dict[str, Any] = {"Limit": limit}
    if params.get("lastId"):
        scan_kwargs["ExclusiveStartKey"] = {"caseId": params["lastId"]}

    try:
        response = cases_table.scan(**scan_kwargs)
    except ClientError as e:
        logger.error(f"Failed to list cases: {e}")
        raise ApiError("Failed to list cases") from e

    items = sorted(response.get("Items", []), key=lambda c: c.get("createdAt", ""), reverse=not asc)
    result = {"items": items, "count": len(items), "lastId": None}
    if "LastEvaluatedKey" in response:
        result["lastId"] = response["LastEvaluatedKey"]["caseId"]
    return create_response(200, result)


def _query_status_page(
    status: str,
    limit: int,
    asc: bool,
    last_id: Optional[str],
    last_created_at: Optional[str],
    created_before: Optional[str] = None,
) -> tuple[list[dict], Optional[dict]]:
    key_condition = Key("status").eq(status)
    if created_before:
        key_condition = key_condition & Key("createdAt").lte(created_before)

    query_kwargs: dict[str, Any] = {
        "IndexName": STATUS_INDEX,
        "KeyConditionExpression": key_condition,
        "ScanIndexForward": asc,
        "Limit": limit,
    }
    if last_id:
        if not last_created_at:
            last_created_at = _get_case_item(last_id).get("createdAt")
        query_kwargs["ExclusiveStartKey"] = {
            "caseId": last_id,
            "status": status,
            "createdAt": last_created_at,
        }

    response = cases_table.query(**query_kwargs)
    last_key = None
    if "LastEvaluatedKey" in response:
        lek = response["LastEvaluatedKey"]
        last_key = {"lastId": lek["caseId"], "createdAt": lek.get("createdAt")}
    return response.get("Items", []), last_key


def cases_by_status(event: dict, claims: dict) -> dict:
    status = normalize_status(path_param(event, "status"))
    params = query_params(event)
    limit = int_param(params, "limit", 10, maximum=100)

    try:
        items, last_key = _query_status_page(
            status,
            limit,
            bool_param(params, "asc"),
            params.get("lastId"),
            params.get("createdAt"),
        )
    except ClientError as e:
        logger.error(f"Failed to list {status} cases: {e}")
        raise ApiError(f"Failed to get cases with status {status}") from e

    return create_response(
        200,
        {
            "items": items,
            "count": len(items),
            "lastId": last_key["lastId"] if last_key else None,
            "lastKey": last_key,
        },
    )


def alert_cases(event: dict, claims: dict) -> dict:
    """Cases flagged as alert plus pending cases older than the threshold."""
    params = query_params(event)
    limit = int_param(params, "limit", 10, maximum=100)
    cutoff = (
        datetime.now(timezone.utc) - timedelta(hours=config.alert_threshold_hours)
    ).isoformat()
    last_id = params.get("lastId")

    try:
        items, last_key = _query_status_page(
            "pending", limit, False, last_id, params.get("createdAt"), created_before=cutoff
        )
        if not last_id:
            flagged, _ = _query_status_page("alert", 100, False, None, None)
            items = flagged + items
    except ClientError as e:
        logger.error(f"Failed to list alert cases: {e}")
        raise ApiError("Failed to get alert cases") from e

    return create_response(200, {"items": items, "count": len(items), "lastKey": last_key})


def cases_by_phone(event: dict, claims: dict) -> dict:
    """Find a caller's cases by phone number."""
    body = parse_body(event)
    phone_number = body.get("phoneNumber") or ""
    if not validate_phone_number(phone_number):
        raise BadRequestError("A valid phoneNumber is required")

    _, local = parse_phone_number(phone_number)
    variants = {local, local.lstrip("0")} - {""}

    items: dict[str, dict] = {}
    try:
        for number in variants:
            response = cases_table.query(
                IndexName=PHONE_INDEX,
                KeyConditionExpression=Key("contactNumber").eq(number),
            )
            for item in response.get("Items", []):
                items[item["caseId"]] = item
    except ClientError as e:
        logger.error(f"Failed to look up cases by phone: {e}")
        raise ApiError("Failed to get cases for phone number") from e

    found = sorted(items.values(), key=lambda c: c.get("createdAt", ""), reverse=True)
    return create_response(200, {"Items": found, "Count": len(found)})


def search_cases(event: dict, claims: dict) -> dict:
    term = (query_params(event).get("q") or "").strip().lower()
    if not term:
        raise BadRequestError("Search term q is required")

    try:
        items = scan_all(cases_table)
    except ClientError as e:
        logger.error(f"Failed to search cases: {e}")
        raise ApiError("Failed to search cases") from e

    matches = [
        c for c in items if any(term in str(c.get(f, "")).lower() for f in SEARCH_FIELDS)
    ]
    matches.sort(key=lambda c: c.get("createdAt", ""), reverse=True)
    matches = matches[:MAX_SEARCH_RESULTS]
    return create_response(200, {"items": matches, "count": len(matches)})


def _date_range(start: date, end: date) -> list[str]:
    days = (end - start).days
    return [(start + timedelta(days=n)).isoformat() for n in range(days + 1)]


def build_dashboard(cases: list[dict], start: date, end: date, user_id: Optional[str] = None) -> dict:
    """
    Aggregate case activity for the dashboard charts.

    Args:
        cases: All case items
        start: First day of the window
        end: Last day of the window
        user_id: Restrict working time to one agent

    Returns:
        activeWorkTimes, daily and total series keyed by YYYY-MM-DD dates
    """
    dates = _date_range(start, end)
    first, last = dates[0], dates[-1]

    hours: dict[str, float] = defaultdict(float)
    daily = {d: {"date": d, "pending": 0, "closed": 0, "all": 0} for d in dates}
    baseline_all = baseline_closed = 0

    for case in cases:
        for entry in case.get("editHistory") or []:
            if user_id and entry.get("agentId") != user_id:
                continue
            day = str(entry.get("startTime", ""))[:10]
            if first <= day <= last:
                hours[day] += float(entry.get("workingTimeHours", 0) or 0)

        created = str(case.get("createdAt", ""))[:10]
        closed = str(case.get("status", "")).lower() == "closed"
        if created < first:
            baseline_all += 1
            baseline_closed += int(closed)
        elif created <= last:
            bucket = daily[created]
            bucket["all"] += 1
            bucket["closed" if closed else "pending"] += 1

    active = [{"date": d, "value": round(hours[d], 2)} for d in dates if hours.get(d)]
    active.append({"date": "ALL", "value": round(sum(hours.values()), 2)})

    total = []
    running_all, running_closed = baseline_all, baseline_closed
    for d in dates:
        running_all += daily[d]["all"]
        running_closed += daily[d]["closed"]
        total.append({"date": d, "closed": running_closed, "all": running_all})

    return {"activeWorkTimes": active, "daily": list(daily.values()), "total": total}


def case_dashboard(event: dict, claims: dict) -> dict:
    params = query_params(event)
    today = datetime.now(timezone.utc).date()
    start_param = params.get("startDate")
    if start_param:
        try:
            start = date.fromisoformat(start_param[:10])
        except ValueError as e:
            raise BadRequestError("startDate must be YYYY-MM-DD") from e
    else:
        start = today - timedelta(days=DASHBOARD_DEFAULT_DAYS)
    if start > today:
        raise BadRequestError("startDate cannot be in the future")

    try:
        cases = scan_all(cases_table)
    except ClientError as e:
        logger.error(f"Failed to load dashboard data: {e}")
        raise ApiError("Failed to get dashboard data") from e

    return create_response(200, build_dashboard(cases, start, today, params.get("userId")))
