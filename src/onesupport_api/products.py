"""
Product catalog endpoints.

Products are stored in DynamoDB keyed by id. Items may carry an
"embedding" attribute written by the ingestion script, used for semantic
search and never returned to clients.
"""

import logging
import re
from typing import Any, Optional

import boto3
from botocore.exceptions import ClientError

from onesupport_assistant.config import AssistantConfig
from onesupport_assistant.embeddings import BedrockEmbedder, cosine_similarity
from onesupport_assistant.errors import AssistantError

from .config import config
from .responses import (
    ApiError,
    BadRequestError,
    NotFoundError,
    create_response,
    int_param,
    paginate,
    parse_body,
    path_param,
    query_params,
    scan_all,
)

logger = logging.getLogger(__name__)

dynamodb = boto3.resource("dynamodb", region_name=config.aws_region)
products_table = dynamodb.Table(config.products_table)

DOOR_TYPES = ("exterior-doors", "interior-doors", "patio-doors")
PRODUCT_TYPES = ("windows",) + DOOR_TYPES
SEARCH_LIMIT = 10

_embedder: Optional[BedrockEmbedder] = None


def get_embedder() -> BedrockEmbedder:
    """Embedding client shared across warm invocations."""
    global _embedder
    if _embedder is None:
        assistant_config = AssistantConfig()
        _embedder = BedrockEmbedder(
            model_id=assistant_config.embedding_model_id,
            region=assistant_config.aws_region,
        )
    return _embedder


def public_product(item: dict) -> dict:
    return {k: v for k, v in item.items() if k != "embedding"}


def resolve_types(product_type: str) -> tuple[str, ...]:
    """Map a requested type or search category onto stored product types."""
    value = (product_type or "").strip().lower()
    if value in ("", "all"):
        return PRODUCT_TYPES
    if value == "doors":
        return DOOR_TYPES
    if value in PRODUCT_TYPES:
        return (value,)
    raise BadRequestError(f"Unknown product type: {product_type}")


def _load_products(types: tuple[str, ...] = PRODUCT_TYPES) -> list[dict]:
    try:
        items = scan_all(products_table)
    except ClientError as e:
        logger.error(f"Failed to load products: {e}")
        raise ApiError("Failed to load products") from e
    return [p for p in items if p.get("productType") in types]


def _sorted_by_name(items: list[dict]) -> list[dict]:
    return sorted(items, key=lambda p: str(p.get("productName", "")).lower())


def list_products(event: dict, claims: dict) -> dict:
    params = query_params(event)
    page = int_param(params, "page", 1)
    limit = int_param(params, "limit", 10, maximum=100)

    products = [public_product(p) for p in _sorted_by_name(_load_products())]
    page_items, pagination = paginate(products, page, limit)
    return create_response(200, {"products": page_items, "pagination": pagination})


def get_product(event: dict, claims: dict) -> dict:
    product_id = path_param(event, "productId")
    try:
        response = products_table.get_item(Key={"id": product_id})
    except ClientError as e:
        logger.error(f"Failed to get product {product_id}: {e}")
        raise ApiError("Failed to get product") from e

    item = response.get("Item")
    if not item:
        raise NotFoundError(f"Product {product_id} not found")
    return create_response(200, public_product(item))


def products_by_type(event: dict, claims: dict) -> dict:
    types = resolve_types(path_param(event, "productType"))
    params = query_params(event)
    page = int_param(params, "page", 1)
    limit = int_param(params, "limit", 10, maximum=100)

    products = [public_product(p) for p in _sorted_by_name(_load_products(types))]
    page_items, pagination = paginate(products, page, limit)
    return create_response(200, {"products": page_items, "pagination": pagination})


def product_by_name(event: dict, claims: dict) -> dict:
    name = path_param(event, "productName").strip().lower()
    for product in _load_products():
        if str(product.get("productName", "")).strip().lower() == name:
            return create_response(200, public_product(product))
    raise NotFoundError(f"Product {name} not found")


def door_counts(event: dict, claims: dict) -> dict:
    doors = _load_products(DOOR_TYPES)
    counts = {t: sum(1 for p in doors if p.get("productType") == t) for t in DOOR_TYPES}
    return create_response(
        200,
        {
            "exteriorDoors": counts["exterior-doors"],
            "interiorDoors": counts["interior-doors"],
            "patioDoors": counts["patio-doors"],
            "total": len(doors),
        },
    )


def _tokens(text: Any) -> set[str]:
    return set(re.findall(r"[a-z0-9]+", str(text or "").lower()))


def keyword_score(query: str, product: dict) -> float:
    """Share of query words found in the product's name, type and specifications."""
    wanted = _tokens(query)
    if not wanted:
        return 0.0
    have = _tokens(product.get("productName")) | _tokens(product.get("productType"))
    have |= _tokens(product.get("specifications"))
    return len(wanted & have) / len(wanted)


def rank_products(query: str, products: list[dict], query_embedding: Optional[list[float]]) -> list[dict]:
    """
    Score products against a query.

    Products with a stored embedding are scored by cosine similarity to the
    query embedding; the rest (or all, when no query embedding is
    available) fall back to keyword overlap.
    """
    scored = []
    for product in products:
        embedding = product.get("embedding")
        if query_embedding and embedding:
            score = cosine_similarity(query_embedding, [float(v) for v in embedding])
        else:
            score = keyword_score(query, product)
        if score > 0:
            scored.append({**public_product(product), "score": round(score, 4)})

    scored.sort(key=lambda p: p["score"], reverse=True)
    return scored[:SEARCH_LIMIT]


def search_products(event: dict, claims: dict) -> dict:
    """Semantic product search with keyword fallback."""
    body = parse_body(event)
    query = (body.get("query") or "").strip()
    if not query:
        raise BadRequestError("query is required")
    search_type = body.get("searchType") or "all"
    products = _load_products(resolve_types(search_type))

    query_embedding = None
    if any(p.get("embedding") for p in products):
        try:
            query_embedding = get_embedder().embed(query)
        except AssistantError as e:
            logger.warning(f"Falling back to keyword search: {e}")

    results = rank_products(query, products, query_embedding)
    logger.info(f"Product search '{query}' ({search_type}): {len(results)} results")
    return create_response(200, {"products": results, "count": len(results), "searchType": search_type})
