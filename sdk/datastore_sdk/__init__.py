"""
Datastore Python SDK - Client library for a schemaless document store.

This SDK provides a typed interface to a remote document store:
- Value types (StringValue, LongValue, ListValue, EntityValue, ...)
- Keys with ancestor paths (PartialKey, Key, KeyFactory)
- Entities built through immutable builders
- Batches and optimistic-concurrency transactions
- Structured and GQL queries with lazy result paging

Example:
    >>> from datastore_sdk import DatastoreClient, DatastoreOptions, Entity, InMemoryRemoteStore
    >>>
    >>> client = DatastoreClient(InMemoryRemoteStore(), DatastoreOptions(dataset="demo"))
    >>> keys = client.new_key_factory().kind("Task")
    >>>
    >>> # Create
    >>> task = Entity.builder(keys.new_key("t1")).set("title", "My Task").build()
    >>> client.put(task)
    >>>
    >>> # Read-modify-write
    >>> with client.new_transaction() as txn:
    ...     current = txn.get(task.key)
    ...     txn.put(current.to_builder().set("done", True).build())

Invariants:
    - Values, keys, entities and queries are immutable
    - Ids are allocated by the store, never generated locally
    - Batches and transactions are single use
    - Writes are atomic per submit() / commit()

Version: 1.0.0
"""

__version__ = "1.0.0"

from .ambient import (
    AmbientCoordinator,
    NoAmbientCoordinator,
    TransactionSynchronization,
    get_ambient_coordinator,
    set_ambient_coordinator,
)
from .batch import Batch, CommitResult
from .client import DatastoreClient
from .config import DatastoreOptions, RetryParams, setup_logging
from .entity import Entity, EntityBuilder, PartialEntity, ProjectionEntity
from .errors import (
    AbortedError,
    AlreadyExistsError,
    DatastoreError,
    EntityNotFoundError,
    ErrorCode,
    FailedPreconditionError,
    InvalidArgumentError,
    PropertyNotFoundError,
    PropertyTypeError,
)
from .key_factory import KeyFactory
from .keys import Key, KeyBuilder, PartialKey, PartialKeyBuilder, PathElement
from .memory import InMemoryRemoteStore
from .query import (
    CompositeFilter,
    Direction,
    GqlQuery,
    OrderBy,
    Projection,
    PropertyFilter,
    Query,
    QueryResults,
    ResultType,
    StructuredQuery,
)
from .store import CommitResponse, Mutation, MutationKind, QueryPage, RemoteStore
from .transaction import Transaction, TransactionState
from .values import (
    BlobValue,
    BooleanValue,
    DateTimeValue,
    DoubleValue,
    EntityValue,
    KeyValue,
    ListValue,
    LongValue,
    NullValue,
    RawValue,
    StringValue,
    Value,
    ValueType,
    to_value,
)

__all__ = [
    # Version
    "__version__",
    # Values
    "Value",
    "ValueType",
    "NullValue",
    "BooleanValue",
    "LongValue",
    "DoubleValue",
    "StringValue",
    "BlobValue",
    "RawValue",
    "DateTimeValue",
    "KeyValue",
    "EntityValue",
    "ListValue",
    "to_value",
    # Keys
    "PathElement",
    "PartialKey",
    "Key",
    "PartialKeyBuilder",
    "KeyBuilder",
    "KeyFactory",
    # Entities
    "PartialEntity",
    "Entity",
    "ProjectionEntity",
    "EntityBuilder",
    # Queries
    "Query",
    "StructuredQuery",
    "GqlQuery",
    "ResultType",
    "PropertyFilter",
    "CompositeFilter",
    "OrderBy",
    "Direction",
    "Projection",
    "QueryResults",
    # Store
    "RemoteStore",
    "InMemoryRemoteStore",
    "Mutation",
    "MutationKind",
    "CommitResponse",
    "QueryPage",
    # Client
    "DatastoreClient",
    "DatastoreOptions",
    "RetryParams",
    "setup_logging",
    "Batch",
    "CommitResult",
    "Transaction",
    "TransactionState",
    # Ambient transactions
    "AmbientCoordinator",
    "NoAmbientCoordinator",
    "TransactionSynchronization",
    "get_ambient_coordinator",
    "set_ambient_coordinator",
    # Errors
    "DatastoreError",
    "ErrorCode",
    "InvalidArgumentError",
    "PropertyTypeError",
    "PropertyNotFoundError",
    "EntityNotFoundError",
    "AlreadyExistsError",
    "AbortedError",
    "FailedPreconditionError",
]
