# =============================================================================
# Session Store Adapters
# =============================================================================
# Key-value persistence with a composite primary key (partition + sort key).
# DynamoDBSessionStore is the production adapter; InMemorySessionStore backs
# tests and local runs.
# =============================================================================

import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from functools import cached_property
from typing import Any, Dict, List, Optional, Tuple

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

REQUIRED_ATTRIBUTES = ("sessionToken", "csrfToken", "sessionKey", "createdAt", "expiresAt")


@dataclass
class SessionRecord:
    """
    Persisted session.

    Attributes:
        partition_key: Salted hash of session_key
        sort_key: Random per-session suffix
        session_token: "partition_key:sort_key"
        csrf_token: Independent random value
        session_key: Caller-supplied identifier (e.g. user id)
        data: Opaque payload
        created_at: Epoch seconds
        last_accessed_at: Epoch seconds
        expires_at: Epoch seconds
        ttl_in_seconds: Lifetime used for sliding refresh
    """
    partition_key: str
    sort_key: str
    session_token: Optional[str] = None
    csrf_token: Optional[str] = None
    session_key: Optional[str] = None
    data: Any = field(default_factory=dict)
    created_at: Optional[int] = None
    last_accessed_at: Optional[int] = None
    expires_at: Optional[int] = None
    ttl_in_seconds: Optional[int] = None

    def to_item(self, partition_key_name: str = "pk", sort_key_name: str = "sk") -> Dict[str, Any]:
        return {
            partition_key_name: self.partition_key,
            sort_key_name: self.sort_key,
            "sessionToken": self.session_token,
            "csrfToken": self.csrf_token,
            "sessionKey": self.session_key,
            "data": self.data,
            "createdAt": self.created_at,
            "lastAccessedAt": self.last_accessed_at,
            "expiresAt": self.expires_at,
            "ttlInSeconds": self.ttl_in_seconds,
        }

    @classmethod
    def from_item(cls, item: Dict[str, Any], partition_key_name: str = "pk", sort_key_name: str = "sk") -> "SessionRecord":
        return cls(
            partition_key=item.get(partition_key_name),
            sort_key=item.get(sort_key_name),
            session_token=item.get("sessionToken"),
            csrf_token=item.get("csrfToken"),
            session_key=item.get("sessionKey"),
            data=item.get("data"),
            created_at=item.get("createdAt"),
            last_accessed_at=item.get("lastAccessedAt"),
            expires_at=item.get("expiresAt"),
            ttl_in_seconds=item.get("ttlInSeconds"),
        )

    def has_required_fields(self) -> bool:
        item = self.to_item()
        return all(item.get(name) for name in REQUIRED_ATTRIBUTES)


class SessionStore(ABC):
    """Store boundary consumed by SessionManager."""

    @abstractmethod
    def get(self, partition_key: str, sort_key: str) -> Optional[SessionRecord]:
        """Strongly consistent read; None when absent."""

    @abstractmethod
    def put(self, record: SessionRecord) -> None:
        """Insert or replace the record."""

    @abstractmethod
    def delete(self, partition_key: str, sort_key: str) -> bool:
        """Delete one row; returns whether a row existed."""

    @abstractmethod
    def query_by_partition(self, partition_key: str) -> List[SessionRecord]:
        """Every record under the partition, following continuation cursors."""


# =============================================================================
# DYNAMODB
# =============================================================================

def _to_dynamo(value: Any) -> Any:
    """boto3 rejects floats; store them as Decimal."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_dynamo(v) for v in value]
    return value


def _from_dynamo(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value % 1 == 0 else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_dynamo(v) for v in value]
    if isinstance(value, set):
        return {_from_dynamo(v) for v in value}
    return value


class DynamoDBSessionStore(SessionStore):
    """
    DynamoDB-backed store.

    The table is created lazily so the module imports without AWS
    credentials. Pass `table` to inject a pre-built (or mocked) Table.
    """

    def __init__(self, table_name: str = "", region: Optional[str] = None,
                 partition_key: str = "pk", sort_key: str = "sk", table: Any = None):
        self.table_name = table_name
        self.region = region
        self.partition_key = partition_key
        self.sort_key = sort_key
        if table is not None:
            self.__dict__["table"] = table

    @cached_property
    def table(self):
        """DynamoDB Table resource."""
        if not self.table_name:
            raise ValueError("DynamoDBSessionStore requires a table_name")
        return boto3.resource("dynamodb", region_name=self.region).Table(self.table_name)

    def _key(self, partition_key: str, sort_key: str) -> Dict[str, str]:
        return {self.partition_key: partition_key, self.sort_key: sort_key}

    def _record(self, item: Dict[str, Any]) -> SessionRecord:
        return SessionRecord.from_item(_from_dynamo(item), self.partition_key, self.sort_key)

    def get(self, partition_key: str, sort_key: str) -> Optional[SessionRecord]:
        try:
            response = self.table.get_item(Key=self._key(partition_key, sort_key), ConsistentRead=True)
        except ClientError as e:
            logger.exception(f"Failed to get session: {e}")
            raise
        item = response.get("Item")
        return self._record(item) if item else None

    def put(self, record: SessionRecord) -> None:
        try:
            self.table.put_item(Item=_to_dynamo(record.to_item(self.partition_key, self.sort_key)))
        except ClientError as e:
            logger.exception(f"Failed to store session: {e}")
            raise

    def delete(self, partition_key: str, sort_key: str) -> bool:
        try:
            response = self.table.delete_item(
                Key=self._key(partition_key, sort_key),
                ReturnValues="ALL_OLD",
            )
        except ClientError as e:
            logger.exception(f"Failed to delete session: {e}")
            raise
        return bool(response.get("Attributes"))

    def query_by_partition(self, partition_key: str) -> List[SessionRecord]:
        kwargs: Dict[str, Any] = {
            "KeyConditionExpression": Key(self.partition_key).eq(partition_key),
            "ConsistentRead": True,
        }
        records: List[SessionRecord] = []
        pages = 0
        while True:
            try:
                response = self.table.query(**kwargs)
            except ClientError as e:
                logger.exception(f"Failed to query sessions: {e}")
                raise
            records.extend(self._record(item) for item in response.get("Items", []))
            pages += 1
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key
        logger.debug(f"Queried {len(records)} sessions across {pages} page(s)")
        return records


# =============================================================================
# IN-MEMORY
# =============================================================================

class InMemorySessionStore(SessionStore):
    """Dict-backed store; records are copied in and out like a real backend."""

    def __init__(self):
        self._rows: Dict[Tuple[str, str], SessionRecord] = {}

    def __len__(self) -> int:
        return len(self._rows)

    def get(self, partition_key: str, sort_key: str) -> Optional[SessionRecord]:
        record = self._rows.get((partition_key, sort_key))
        return copy.deepcopy(record) if record else None

    def put(self, record: SessionRecord) -> None:
        self._rows[(record.partition_key, record.sort_key)] = copy.deepcopy(record)

    def delete(self, partition_key: str, sort_key: str) -> bool:
        return self._rows.pop((partition_key, sort_key), None) is not None

    def query_by_partition(self, partition_key: str) -> List[SessionRecord]:
        return [copy.deepcopy(r) for (pk, _), r in self._rows.items() if pk == partition_key]
