"""In-memory stand-ins for the asyncpg pool and the boto3 S3 client."""
import asyncio
import hashlib
import re
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import asyncpg
from botocore.exceptions import ClientError

UNIQUE_COLUMNS = {
    "item_categories": [("name", "parent_id")],
    "avatar_categories": [("name", "parent_id")],
    "items": [("public_id",), ("slug",)],
    "avatar_parts": [("public_id",), ("slug",)],
    "item_permissions": [("developer_id", "entry_id")],
    "avatar_permissions": [("developer_id", "entry_id")],
}

PRIMARY_KEYS = {
    "item_categories": "category_id",
    "avatar_categories": "category_id",
    "items": "entry_id",
    "avatar_parts": "entry_id",
    "item_permissions": "grant_id",
    "avatar_permissions": "grant_id",
}

ENTRY_DEFAULTS = {
    "description": None,
    "storage_url": None,
    "file_size": 0,
    "file_type": None,
    "mime_type": None,
    "access_policy": "DEVELOPERS_ONLY",
    "is_premium": False,
    "is_free": False,
    "status": "ACTIVE",
    "owner_project_id": None,
    "uploaded_by": None,
    "metadata": {},
    "updated_at": None,
    "deleted_at": None,
}


def _normalize(query: str) -> str:
    return " ".join(query.split())


class FakeConnection:
    """Answers exactly the statements the services issue."""

    def __init__(self, db: "FakeDatabase"):
        self.db = db
        self.handlers = [
            (r"^SELECT .* FROM (\w+) WHERE name = \$1 AND parent_id IS NOT DISTINCT FROM \$2$",
             self._find_category),
            (r"^INSERT INTO (\w+_categories) \(name, parent_id, path, level\)", self._insert_category),
            (r"^SELECT .* FROM (\w+_categories) WHERE category_id = \$1$", self._get_category),
            (r"^SELECT 1 FROM (\w+) WHERE public_id = \$1$", self._public_id_taken),
            (r"^SELECT 1 FROM (\w+) WHERE slug = \$1", self._slug_taken),
            (r"^SELECT \* FROM (\w+) WHERE public_id = \$1 AND deleted_at IS NULL$", self._entry_by_public_id),
            (r"^SELECT \* FROM (\w+) WHERE entry_id = \$1 AND deleted_at IS NULL$", self._entry_by_id),
            (r"^SELECT \* FROM (\w+) WHERE category_id = \$1 AND name = \$2 AND checksum = \$3",
             self._entry_by_content),
            (r"^INSERT INTO (items|avatar_parts) \(([^)]*)\) VALUES", self._insert_entry),
            (r"^UPDATE (\w+) SET status = \$2, deleted_at = \$3, updated_at = \$3 "
             r"WHERE public_id = \$1 AND deleted_at IS NULL$", self._archive_entry),
            (r"^UPDATE (\w+) SET (.*) WHERE entry_id = \$(\d+) RETURNING \*$", self._update_entry),
            (r"^INSERT INTO (\w+_permissions) .* ON CONFLICT", self._upsert_grant),
            (r"^SELECT \* FROM (\w+_permissions) WHERE developer_id = \$1 AND entry_id = \$2",
             self._active_grant),
            (r"^DELETE FROM (\w+_permissions) WHERE developer_id = \$1 AND entry_id = \$2$",
             self._delete_grant),
        ]

    async def _dispatch(self, query: str, args):
        # Yield so concurrent callers interleave like real round trips
        await asyncio.sleep(0)
        sql = _normalize(query)
        self.db.queries.append(sql)
        for pattern, handler in self.handlers:
            match = re.match(pattern, sql)
            if match:
                if self.db.fail_with is not None:
                    error, self.db.fail_with = self.db.fail_with, None
                    raise error
                for i, (fragment, error) in enumerate(self.db.statement_failures):
                    if fragment in sql:
                        del self.db.statement_failures[i]
                        raise error
                return handler(match, list(args))
        raise AssertionError(f"Unexpected query: {sql}")

    async def fetchrow(self, query, *args):
        result = await self._dispatch(query, args)
        if isinstance(result, list):
            return result[0] if result else None
        return result

    async def fetchval(self, query, *args):
        result = await self._dispatch(query, args)
        if isinstance(result, list):
            return 1 if result else None
        return result

    async def execute(self, query, *args):
        return await self._dispatch(query, args)

    @asynccontextmanager
    async def transaction(self):
        yield

    # categories

    def _find_category(self, match, args):
        name, parent_id = args
        return [dict(r) for r in self.db.tables[match.group(1)]
                if r["name"] == name and r["parent_id"] == parent_id]

    def _insert_category(self, match, args):
        name, parent_id, path, level = args
        return dict(self.db.insert(match.group(1), {
            "name": name, "parent_id": parent_id, "path": path, "level": level,
            "updated_at": None,
        }))

    def _get_category(self, match, args):
        return [dict(r) for r in self.db.tables[match.group(1)] if r["category_id"] == args[0]]

    # identifiers

    def _public_id_taken(self, match, args):
        return [r for r in self.db.tables[match.group(1)] if r["public_id"] == args[0]]

    def _slug_taken(self, match, args):
        slug, exclude = args
        return [r for r in self.db.tables[match.group(1)]
                if r["slug"] == slug and (exclude is None or r["entry_id"] != exclude)]

    # entries

    def _live(self, table):
        return [r for r in self.db.tables[table] if r.get("deleted_at") is None]

    def _entry_by_public_id(self, match, args):
        return [dict(r) for r in self._live(match.group(1)) if r["public_id"] == args[0]]

    def _entry_by_id(self, match, args):
        return [dict(r) for r in self._live(match.group(1)) if r["entry_id"] == args[0]]

    def _entry_by_content(self, match, args):
        category_id, name, checksum = args
        return [dict(r) for r in self._live(match.group(1))
                if r.get("category_id") == category_id and r.get("name") == name
                and r.get("checksum") == checksum]

    def _insert_entry(self, match, args):
        columns = [c.strip() for c in match.group(2).split(",")]
        row = dict(ENTRY_DEFAULTS)
        row.update(zip(columns, args))
        return dict(self.db.insert(match.group(1), row))

    def _archive_entry(self, match, args):
        public_id, status, now = args
        rows = [r for r in self._live(match.group(1)) if r["public_id"] == public_id]
        for row in rows:
            row.update(status=status, deleted_at=now, updated_at=now)
        return f"UPDATE {len(rows)}"

    def _update_entry(self, match, args):
        table = match.group(1)
        assignments = {}
        for part in match.group(2).split(", "):
            column, placeholder = part.split(" = ")
            assignments[column] = args[int(placeholder.lstrip("$")) - 1]
        entry_id = args[int(match.group(3)) - 1]
        for row in self.db.tables[table]:
            if row["entry_id"] == entry_id:
                self.db.check_unique(table, {**row, **assignments}, ignore=row)
                row.update(assignments)
                return [dict(row)]
        return []

    # grants

    def _upsert_grant(self, match, args):
        table = match.group(1)
        developer_id, entry_id, is_paid, paid_amount, expires_at, granted_by, reason, now = args
        values = {"is_paid": is_paid, "paid_amount": paid_amount, "expires_at": expires_at,
                  "granted_by": granted_by, "reason": reason}
        for row in self.db.tables[table]:
            if row["developer_id"] == developer_id and row["entry_id"] == entry_id:
                row.update(values, updated_at=now)
                return dict(row)
        return dict(self.db.insert(table, {
            "developer_id": developer_id, "entry_id": entry_id, "granted_at": now,
            "updated_at": None, **values,
        }))

    def _active_grant(self, match, args):
        developer_id, entry_id, now = args
        return [dict(r) for r in self.db.tables[match.group(1)]
                if r["developer_id"] == developer_id and r["entry_id"] == entry_id
                and (r["expires_at"] is None or r["expires_at"] > now)]

    def _delete_grant(self, match, args):
        table = match.group(1)
        before = len(self.db.tables[table])
        self.db.tables[table] = [r for r in self.db.tables[table]
                                 if not (r["developer_id"] == args[0] and r["entry_id"] == args[1])]
        return f"DELETE {before - len(self.db.tables[table])}"


class FakePool:
    def __init__(self, db: "FakeDatabase"):
        self.db = db

    @asynccontextmanager
    async def acquire(self):
        yield FakeConnection(self.db)


class FakeDatabase:
    """Mimics ``Database``: exposes ``pool`` and enforces unique columns."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.sequences: Dict[str, int] = defaultdict(int)
        self.queries: List[str] = []
        self.fail_with: Optional[BaseException] = None
        self.statement_failures: List[Tuple[str, BaseException]] = []
        self.pool = FakePool(self)

    def fail_on(self, fragment: str, error: BaseException):
        """Raise ``error`` for the next statement containing ``fragment``"""
        self.statement_failures.append((fragment, error))

    def check_unique(self, table: str, row: Dict[str, Any], ignore=None):
        for columns in UNIQUE_COLUMNS.get(table, []):
            key = tuple(row.get(c) for c in columns)
            for existing in self.tables[table]:
                if existing is ignore:
                    continue
                if tuple(existing.get(c) for c in columns) == key:
                    raise asyncpg.UniqueViolationError(
                        f"duplicate key value violates unique constraint on {table}{columns}"
                    )

    def insert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        self.check_unique(table, values)
        self.sequences[table] += 1
        row = {PRIMARY_KEYS[table]: self.sequences[table],
               "created_at": datetime.now(timezone.utc), **values}
        self.tables[table].append(row)
        return row


def client_error(code: str, operation: str, message: str = "") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class FakeS3Client:
    """Synchronous boto3-shaped S3 client backed by a dict."""

    def __init__(self):
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.uploads: Dict[str, Dict[str, Any]] = {}
        self.calls: List[str] = []
        self.failures: Dict[str, List[BaseException]] = defaultdict(list)
        self._upload_counter = 0

    def fail(self, method: str, *errors: BaseException):
        """Queue errors raised by the next calls of ``method``"""
        self.failures[method].extend(errors)

    def _record(self, method: str):
        self.calls.append(method)
        if self.failures[method]:
            raise self.failures[method].pop(0)

    def head_object(self, Bucket, Key):
        self._record("head_object")
        obj = self.objects.get(Key)
        if obj is None:
            raise client_error("404", "HeadObject", "Not Found")
        return {
            "ContentLength": len(obj["Body"]),
            "ContentType": obj["ContentType"],
            "ETag": obj["ETag"],
            "Metadata": dict(obj["Metadata"]),
        }

    def put_object(self, Bucket, Key, Body, ContentType, Metadata):
        self._record("put_object")
        etag = f'"{hashlib.md5(Body).hexdigest()}"'
        self.objects[Key] = {"Body": bytes(Body), "ContentType": ContentType,
                             "Metadata": dict(Metadata), "ETag": etag}
        return {"ETag": etag}

    def create_multipart_upload(self, Bucket, Key, ContentType, Metadata):
        self._record("create_multipart_upload")
        self._upload_counter += 1
        upload_id = f"upload-{self._upload_counter}"
        self.uploads[upload_id] = {"Key": Key, "ContentType": ContentType,
                                   "Metadata": dict(Metadata), "Parts": {}}
        return {"UploadId": upload_id}

    def upload_part(self, Bucket, Key, UploadId, PartNumber, Body):
        self._record("upload_part")
        etag = f'"{hashlib.md5(Body).hexdigest()}"'
        self.uploads[UploadId]["Parts"][PartNumber] = (etag, bytes(Body))
        return {"ETag": etag}

    def complete_multipart_upload(self, Bucket, Key, UploadId, MultipartUpload):
        self._record("complete_multipart_upload")
        session = self.uploads.pop(UploadId)
        body = b"".join(session["Parts"][p["PartNumber"]][1] for p in MultipartUpload["Parts"])
        self.objects[Key] = {"Body": body, "ContentType": session["ContentType"],
                             "Metadata": session["Metadata"], "ETag": '"multipart"'}
        return {}

    def abort_multipart_upload(self, Bucket, Key, UploadId):
        self._record("abort_multipart_upload")
        self.uploads.pop(UploadId, None)
        return {}

    def generate_presigned_url(self, method, Params, ExpiresIn):
        return f"https://signed.example/{Params['Key']}?expires={ExpiresIn}"
