#!/usr/bin/env python3
"""
Data Ingestion Script for OneSupport

Builds the assistant's document index from the PDFs in S3 and loads the
product catalog, with embeddings, into DynamoDB.
"""

import argparse
import json
import logging
import os
import sys
from decimal import Decimal
from typing import Optional

import boto3
from botocore.exceptions import ClientError

from onesupport_assistant import AssistantConfig, AssistantError, DocumentIndexer
from onesupport_assistant.embeddings import BedrockEmbedder

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

PRODUCT_TYPES = ("windows", "exterior-doors", "interior-doors", "patio-doors")


class DataIngester:
    """Handles data ingestion for OneSupport."""

    def __init__(
        self,
        region: str = "ap-southeast-2",
        bucket: Optional[str] = None,
        products_table: Optional[str] = None,
    ):
        """
        Initialize the data ingester.

        Args:
            region: AWS region
            bucket: S3 bucket holding raw/ documents and the index
            products_table: DynamoDB table name for products
        """
        self.config = AssistantConfig(aws_region=region)
        if bucket:
            self.config.s3_bucket = bucket
        self.products_table = products_table or os.environ.get(
            "PRODUCTS_TABLE", "dev-onesupportai-products"
        )

        # Initialize AWS clients
        self.dynamodb = boto3.resource("dynamodb", region_name=region)
        self.s3 = boto3.client("s3", region_name=region)
        self.embedder = BedrockEmbedder(self.config.embedding_model_id, region=region)

    def build_document_index(self) -> int:
        """Index every PDF under raw/ and write the manifest."""
        indexer = DocumentIndexer(self.config, s3_client=self.s3, embedder=self.embedder)
        report = indexer.build_index()
        for key in report.skipped:
            logger.warning(f"Skipped: {key}")
        logger.info(f"Indexed {report.documents} documents ({report.chunks} chunks)")
        return report.documents

    def product_item(self, product: dict) -> dict:
        """Build a products table item, embedding name and specifications."""
        product_type = product.get("productType", "")
        if product_type not in PRODUCT_TYPES:
            raise ValueError(f"Unknown productType: {product_type}")

        item = json.loads(json.dumps(product), parse_float=Decimal)
        item["id"] = str(product.get("id") or product["productName"].lower().replace(" ", "-"))
        text = f"{product['productName']}\n{product.get('specifications', '')}"
        item["embedding"] = [Decimal(str(v)) for v in self.embedder.embed(text)]
        return item

    def load_products(self, file_path: str) -> int:
        """
        Load the product catalog into DynamoDB.

        Args:
            file_path: Path to a JSON list of products

        Returns:
            Number of products loaded
        """
        logger.info(f"Loading products from {file_path}")

        try:
            with open(file_path, "r") as f:
                products = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read file: {e}")
            return 0

        table = self.dynamodb.Table(self.products_table)
        count = 0
        for product in products:
            name = product.get("productName", "<unnamed>")
            try:
                table.put_item(Item=self.product_item(product))
                count += 1
                logger.info(f"Loaded product: {name}")
            except (KeyError, ValueError, AssistantError, ClientError) as e:
                logger.error(f"Failed to load product {name}: {e}")

        logger.info(f"Successfully loaded {count} products")
        return count

    def verify_setup(self) -> dict:
        """
        Verify the data ingestion setup.

        Returns:
            Dictionary with verification results
        """
        results = {"dynamodb": False, "bedrock": False, "s3": False}

        # Check DynamoDB
        try:
            self.dynamodb.Table(self.products_table).table_status
            results["dynamodb"] = True
            logger.info(f"DynamoDB table {self.products_table} is accessible")
        except ClientError as e:
            logger.error(f"DynamoDB check failed: {e}")

        # Check Bedrock
        try:
            test_embedding = self.embedder.embed("test")
            results["bedrock"] = True
            logger.info(f"Bedrock embedding model is accessible (dimension: {len(test_embedding)})")
        except AssistantError as e:
            logger.error(f"Bedrock check failed: {e}")

        # Check S3
        try:
            self.s3.head_bucket(Bucket=self.config.s3_bucket)
            results["s3"] = True
            logger.info(f"S3 bucket {self.config.s3_bucket} is accessible")
        except ClientError as e:
            logger.error(f"S3 check failed: {e}")

        return results


def main(argv: Optional[list] = None):
    parser = argparse.ArgumentParser(
        description="Build the document index and load products for OneSupport"
    )
    parser.add_argument(
        "--region",
        default=os.environ.get("AWS_REGION", "ap-southeast-2"),
        help="AWS region",
    )
    parser.add_argument(
        "--bucket",
        default=os.environ.get("S3_BUCKET"),
        help="S3 bucket with raw/ documents",
    )
    parser.add_argument(
        "--products-table",
        default=os.environ.get("PRODUCTS_TABLE"),
        help="DynamoDB table name for products",
    )
    parser.add_argument(
        "--products-file",
        default="data/products.json",
        help="Path to products JSON file",
    )
    parser.add_argument(
        "--verify-only",
        action="store_true",
        help="Only verify setup, don't load data",
    )
    parser.add_argument(
        "--skip-documents",
        action="store_true",
        help="Skip rebuilding the document index",
    )
    parser.add_argument(
        "--skip-products",
        action="store_true",
        help="Skip loading products to DynamoDB",
    )

    args = parser.parse_args(argv)

    ingester = DataIngester(
        region=args.region,
        bucket=args.bucket,
        products_table=args.products_table,
    )

    if args.verify_only:
        results = ingester.verify_setup()
        print("\nVerification Results:")
        for service, status in results.items():
            status_text = "OK" if status else "FAILED"
            print(f"  {service}: {status_text}")
        sys.exit(0 if all(results.values()) else 1)

    if not args.skip_documents:
        ingester.build_document_index()

    if not args.skip_products:
        ingester.load_products(args.products_file)

    print("\nData ingestion complete!")


if __name__ == "__main__":
    main()
