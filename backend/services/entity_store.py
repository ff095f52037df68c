"""
Entity Store - persistence collaborator for accounts, leads, quotes and orders

Documents are plain dicts keyed by a per-collection id field. Every document
carries a `version` counter: `replace` only succeeds when the caller read the
latest version, which keeps read-modify-write atomic across processes. Inside
one process the services additionally serialize per entity (see locks.py).
"""
import copy
from typing import Optional, List, Dict

from pymongo.errors import DuplicateKeyError

from services.errors import ConcurrentModificationError

ID_FIELDS = {
    "business_accounts": "account_id",
    "leads": "lead_id",
    "quotes": "quote_id",
    "orders": "order_id",
    "credit_receipts": "receipt_id",
    "products": "product_id",
    "rfq_drafts": "cart_key",
    "activity_log": "activity_id",
}


def id_field(collection: str) -> str:
    return ID_FIELDS.get(collection, "id")


def _matches(doc: dict, query: Optional[dict]) -> bool:
    """Equality match; a list value means 'any of'"""
    if not query:
        return True
    for key, expected in query.items():
        value = doc.get(key)
        if isinstance(expected, (list, tuple, set)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


class EntityStore:
    """Interface every persistence backend implements"""

    async def get(self, collection: str, entity_id: str) -> Optional[dict]:
        raise NotImplementedError

    async def insert(self, collection: str, doc: dict) -> dict:
        raise NotImplementedError

    async def replace(self, collection: str, doc: dict, expected_version: int) -> dict:
        raise NotImplementedError

    async def delete(self, collection: str, entity_id: str) -> bool:
        raise NotImplementedError

    async def find(self, collection: str, query: Optional[dict] = None) -> List[dict]:
        raise NotImplementedError

    async def count(self, collection: str, query: Optional[dict] = None) -> int:
        return len(await self.find(collection, query))


class InMemoryEntityStore(EntityStore):
    """Dict-backed store. Returns deep copies so callers never alias stored state."""

    def __init__(self):
        self._data: Dict[str, Dict[str, dict]] = {}

    def _collection(self, name: str) -> Dict[str, dict]:
        return self._data.setdefault(name, {})

    async def get(self, collection: str, entity_id: str) -> Optional[dict]:
        doc = self._collection(collection).get(entity_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def insert(self, collection: str, doc: dict) -> dict:
        key = doc[id_field(collection)]
        docs = self._collection(collection)
        if key in docs:
            raise ConcurrentModificationError(f"{collection} '{key}' already exists")
        stored = copy.deepcopy(doc)
        stored["version"] = 1
        docs[key] = stored
        return copy.deepcopy(stored)

    async def replace(self, collection: str, doc: dict, expected_version: int) -> dict:
        key = doc[id_field(collection)]
        docs = self._collection(collection)
        current = docs.get(key)
        if current is None or current.get("version") != expected_version:
            raise ConcurrentModificationError(
                f"{collection} '{key}' was modified concurrently (expected version {expected_version})"
            )
        stored = copy.deepcopy(doc)
        stored["version"] = expected_version + 1
        docs[key] = stored
        return copy.deepcopy(stored)

    async def delete(self, collection: str, entity_id: str) -> bool:
        return self._collection(collection).pop(entity_id, None) is not None

    async def find(self, collection: str, query: Optional[dict] = None) -> List[dict]:
        # list() takes a snapshot so concurrent writers cannot break iteration
        docs = list(self._collection(collection).values())
        return [copy.deepcopy(d) for d in docs if _matches(d, query)]


class MongoEntityStore(EntityStore):
    """Motor-backed store. One MongoDB collection per entity type."""

    def __init__(self, db):
        self.db = db

    def _mongo_query(self, query: Optional[dict]) -> dict:
        mongo_query = {}
        for key, expected in (query or {}).items():
            if isinstance(expected, (list, tuple, set)):
                mongo_query[key] = {"$in": list(expected)}
            else:
                mongo_query[key] = expected
        return mongo_query

    async def get(self, collection: str, entity_id: str) -> Optional[dict]:
        return await self.db[collection].find_one({id_field(collection): entity_id}, {"_id": 0})

    async def insert(self, collection: str, doc: dict) -> dict:
        stored = {**doc, "version": 1}
        try:
            await self.db[collection].insert_one(dict(stored))
        except DuplicateKeyError as e:
            raise ConcurrentModificationError(f"{collection} '{doc[id_field(collection)]}' already exists") from e
        return stored

    async def replace(self, collection: str, doc: dict, expected_version: int) -> dict:
        key_field = id_field(collection)
        stored = {**doc, "version": expected_version + 1}
        stored.pop("_id", None)
        result = await self.db[collection].replace_one(
            {key_field: doc[key_field], "version": expected_version},
            stored,
        )
        if result.matched_count == 0:
            raise ConcurrentModificationError(
                f"{collection} '{doc[key_field]}' was modified concurrently (expected version {expected_version})"
            )
        return stored

    async def delete(self, collection: str, entity_id: str) -> bool:
        result = await self.db[collection].delete_one({id_field(collection): entity_id})
        return result.deleted_count > 0

    async def find(self, collection: str, query: Optional[dict] = None) -> List[dict]:
        cursor = self.db[collection].find(self._mongo_query(query), {"_id": 0})
        return await cursor.to_list(None)

    async def count(self, collection: str, query: Optional[dict] = None) -> int:
        return await self.db[collection].count_documents(self._mongo_query(query))


# ==================== MODEL HELPERS ====================

async def load_model(store: EntityStore, collection: str, model_cls, entity_id: str):
    """Fetch a document and validate it into `model_cls`; None when missing"""
    doc = await store.get(collection, entity_id)
    return model_cls.model_validate(doc) if doc is not None else None


async def insert_model(store: EntityStore, collection: str, model):
    doc = await store.insert(collection, model.model_dump(mode="json"))
    return type(model).model_validate(doc)


async def save_model(store: EntityStore, collection: str, model):
    """Replace the stored document, guarded by the version the model was read at"""
    doc = await store.replace(collection, model.model_dump(mode="json"), expected_version=model.version)
    return type(model).model_validate(doc)
