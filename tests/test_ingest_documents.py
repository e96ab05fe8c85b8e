"""
Unit tests for the ingestion script.
"""

import json
import os
import sys
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))


@pytest.fixture
def ingester():
    with patch("scripts.ingest_documents.boto3") as mock_boto3, patch(
        "scripts.ingest_documents.BedrockEmbedder"
    ) as mock_embedder_cls:
        from scripts.ingest_documents import DataIngester

        mock_embedder_cls.return_value.embed.return_value = [0.25, 0.5]
        instance = DataIngester(region="ap-southeast-2", bucket="docs", products_table="products")
        instance.table = mock_boto3.resource.return_value.Table.return_value
        yield instance


class TestProductItem:
    """Tests for building product items."""

    def test_derives_id_and_embeds(self, ingester):
        item = ingester.product_item(
            {"productName": "Patio Slider", "productType": "patio-doors", "price": 1299.5, "specifications": "2.4m"}
        )

        assert item["id"] == "patio-slider"
        assert item["price"] == Decimal("1299.5")
        assert item["embedding"] == [Decimal("0.25"), Decimal("0.5")]
        ingester.embedder.embed.assert_called_once_with("Patio Slider\n2.4m")

    def test_rejects_unknown_type(self, ingester):
        with pytest.raises(ValueError):
            ingester.product_item({"productName": "Shed", "productType": "sheds"})

    def test_bucket_override(self, ingester):
        assert ingester.config.s3_bucket == "docs"
        assert ingester.products_table == "products"


class TestLoadProducts:
    """Tests for loading the catalog file."""

    def test_skips_bad_products(self, ingester, tmp_path):
        path = tmp_path / "products.json"
        path.write_text(
            json.dumps(
                [
                    {"productName": "Casement", "productType": "windows"},
                    {"productName": "Shed", "productType": "sheds"},
                ]
            )
        )

        assert ingester.load_products(str(path)) == 1
        assert ingester.table.put_item.call_count == 1

    def test_missing_file(self, ingester):
        assert ingester.load_products("/nonexistent/products.json") == 0
