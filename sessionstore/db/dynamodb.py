"""
DynamoDB storage backend.

Items have three attributes: ``id`` (S, hash key), ``data`` (B) and
``expires`` (N, unix seconds). Other attributes are ignored on read.

Uses a low-level boto3 client, which is thread-safe and can be shared between
request threads and the expiration sweeper. Timeouts and retries are botocore
client configuration, not handled here.
"""

from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from sessionstore.core.config import Settings
from sessionstore.core.exceptions import BackendError
from sessionstore.core.logging_config import get_logger
from sessionstore.db.backend import PageCallback
from sessionstore.db.models import SessionRecord

logger = get_logger(__name__)


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class DynamoDBBackend:
    """Session records in a single DynamoDB table keyed by ``id``."""

    def __init__(self, client: Any, table_name: str):
        self.client = client
        self.table_name = table_name

    @classmethod
    def from_settings(cls, config: Settings) -> "DynamoDBBackend":
        """Create a backend with a fresh boto3 client for the configured region."""
        client = boto3.client(
            "dynamodb",
            region_name=config.aws_region,
            endpoint_url=config.dynamodb_endpoint_url,
            config=Config(retries={"mode": "standard"}),
        )
        return cls(client, config.table_name)

    def create_table_if_absent(
        self, read_capacity: int, write_capacity: int, wait: bool = True
    ) -> bool:
        """
        Make sure the session table exists.

        Args:
            read_capacity: Provisioned read capacity used if the table is created
            write_capacity: Provisioned write capacity used if the table is created
            wait: Block until a newly created table is ACTIVE

        Returns:
            True if this call created the table

        Raises:
            BackendError: If the table cannot be described or created
        """
        try:
            self.client.describe_table(TableName=self.table_name)
            return False
        except ClientError as e:
            if _error_code(e) != "ResourceNotFoundException":
                raise BackendError(f"Cannot describe table {self.table_name}: {e}") from e
        except BotoCoreError as e:
            raise BackendError(f"Cannot describe table {self.table_name}: {e}") from e

        logger.info(
            "Creating session table %s (read=%d, write=%d)",
            self.table_name, read_capacity, write_capacity,
        )
        try:
            self.client.create_table(
                TableName=self.table_name,
                AttributeDefinitions=[{"AttributeName": "id", "AttributeType": "S"}],
                KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
                ProvisionedThroughput={
                    "ReadCapacityUnits": read_capacity,
                    "WriteCapacityUnits": write_capacity,
                },
            )
        except ClientError as e:
            if _error_code(e) == "ResourceInUseException":
                # Another process created it between describe and create
                logger.info("Session table %s was created concurrently", self.table_name)
                return False
            raise BackendError(f"Cannot create table {self.table_name}: {e}") from e
        except BotoCoreError as e:
            raise BackendError(f"Cannot create table {self.table_name}: {e}") from e

        if wait:
            try:
                self.client.get_waiter("table_exists").wait(TableName=self.table_name)
            except Exception as e:
                raise BackendError(f"Table {self.table_name} did not become active: {e}") from e
        return True

    def get_item(self, session_id: str) -> Optional[SessionRecord]:
        try:
            response = self.client.get_item(
                TableName=self.table_name,
                Key={"id": {"S": session_id}},
            )
        except (ClientError, BotoCoreError) as e:
            raise BackendError(f"Cannot read session record: {e}") from e

        item = response.get("Item")
        if not item or "id" not in item:
            return None
        return self._record_from_item(item)

    def put_item(self, record: SessionRecord) -> None:
        try:
            self.client.put_item(
                TableName=self.table_name,
                Item={
                    "id": {"S": record.id},
                    "data": {"B": record.data},
                    "expires": {"N": str(int(record.expires))},
                },
            )
        except (ClientError, BotoCoreError) as e:
            raise BackendError(f"Cannot write session record: {e}") from e

    def delete_item(self, session_id: str) -> None:
        # DeleteItem on a missing key succeeds, which keeps deletes idempotent
        try:
            self.client.delete_item(
                TableName=self.table_name,
                Key={"id": {"S": session_id}},
            )
        except (ClientError, BotoCoreError) as e:
            raise BackendError(f"Cannot delete session record: {e}") from e

    def scan_all(self, callback: PageCallback) -> None:
        paginator = self.client.get_paginator("scan")
        try:
            for page in paginator.paginate(TableName=self.table_name):
                records = [
                    self._record_from_item(item)
                    for item in page.get("Items", [])
                    if "id" in item
                ]
                if not callback(records):
                    break
        except (ClientError, BotoCoreError) as e:
            raise BackendError(f"Cannot scan table {self.table_name}: {e}") from e

    @staticmethod
    def _record_from_item(item: Dict[str, Any]) -> SessionRecord:
        expires: Optional[int] = None
        raw_expires = item.get("expires", {}).get("N")
        if raw_expires is not None:
            try:
                expires = int(float(raw_expires))
            except (ValueError, OverflowError):
                logger.warning("Session record has a malformed expiry: %r", raw_expires)
        return SessionRecord(
            id=item["id"]["S"],
            data=item.get("data", {}).get("B", b""),
            expires=expires,
        )
