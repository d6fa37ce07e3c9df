"""age-encrypted, file-backed document store with a JSON-lines audit trail.

Layout: ``<data_lake_path>/users/<user_id>/<collection>/<doc_id>.age``.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pyrage
import pyrage.x25519

from stride.core.config import Settings
from stride.core.config import settings as default_settings
from stride.data.store import Document, DocumentStore

logger = logging.getLogger(__name__)

_SAFE_SEGMENT_RE = re.compile(r"^[a-zA-Z0-9_-]+$")


def seal_document(doc: dict[str, Any], recipient_key: str) -> bytes:
    """Serialize a document to JSON and encrypt it for an age recipient."""
    recipient = pyrage.x25519.Recipient.from_str(recipient_key)
    plaintext = json.dumps(doc, ensure_ascii=False, default=str).encode("utf-8")
    result: bytes = pyrage.encrypt(plaintext, [recipient])
    return result


def open_document(ciphertext: bytes, identity_key: str) -> dict[str, Any]:
    """Decrypt an age-sealed document and parse its JSON."""
    identity = pyrage.x25519.Identity.from_str(identity_key)
    plaintext: bytes = pyrage.decrypt(ciphertext, [identity])
    result: dict[str, Any] = json.loads(plaintext.decode("utf-8"))
    return result


def write_audit_entry(audit_path: Path, entry: dict[str, Any]) -> None:
    """Append a JSON-lines entry to an audit log file."""
    audit_path.parent.mkdir(parents=True, exist_ok=True)
    with audit_path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(entry, default=str) + "\n")


def _check_segment(value: str) -> str:
    # Security: path segments come from callers, reject traversal
    if not _SAFE_SEGMENT_RE.match(value):
        msg = f"Invalid path segment: {value!r}"
        raise ValueError(msg)
    return value


class LakeDocumentStore(DocumentStore):
    """Stores every document as its own age-encrypted file."""

    def __init__(self, config: Settings | None = None) -> None:
        super().__init__()
        cfg = config or default_settings
        if not cfg.age_recipient or not cfg.age_identity:
            msg = "age_recipient and age_identity are required for the lake store"
            raise ValueError(msg)
        self._recipient = cfg.age_recipient
        self._identity = cfg.age_identity
        self._root = cfg.data_lake_path / "users"
        self._audit_file = cfg.data_audit_path / "store.jsonl"

    def _doc_path(self, user_id: str, collection: str, doc_id: str) -> Path:
        return self._root / _check_segment(user_id) / _check_segment(collection) / f"{_check_segment(doc_id)}.age"

    def _audit(self, action: str, user_id: str, collection: str, doc_id: str | None = None) -> None:
        write_audit_entry(
            self._audit_file,
            {
                "timestamp": datetime.now(UTC).isoformat(),
                "action": action,
                "user_id": user_id,
                "collection": collection,
                "doc_id": doc_id,
            },
        )

    async def _get_doc(self, user_id: str, collection: str, doc_id: str) -> Document | None:
        path = self._doc_path(user_id, collection, doc_id)
        if not path.exists():
            return None
        return open_document(path.read_bytes(), self._identity)

    async def _put_doc(self, user_id: str, collection: str, doc_id: str, doc: Document) -> None:
        path = self._doc_path(user_id, collection, doc_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        # write-then-rename so readers never see a half-written document
        tmp = path.with_suffix(".tmp")
        tmp.write_bytes(seal_document(doc, self._recipient))
        tmp.replace(path)
        self._audit("write", user_id, collection, doc_id)

    async def _delete_doc(self, user_id: str, collection: str, doc_id: str) -> bool:
        path = self._doc_path(user_id, collection, doc_id)
        if not path.exists():
            return False
        path.unlink()
        self._audit("delete", user_id, collection, doc_id)
        return True

    async def _list_docs(self, user_id: str, collection: str) -> dict[str, Document]:
        coll_dir = self._root / _check_segment(user_id) / _check_segment(collection)
        self._audit("query", user_id, collection)
        if not coll_dir.exists():
            return {}
        docs: dict[str, Document] = {}
        for age_file in sorted(coll_dir.glob("*.age")):
            try:
                docs[age_file.stem] = open_document(age_file.read_bytes(), self._identity)
            except Exception as exc:
                logger.error("Failed to decrypt %s: %s", age_file, exc)
        return docs

    async def _list_users(self) -> list[str]:
        if not self._root.exists():
            return []
        return sorted(p.name for p in self._root.iterdir() if p.is_dir())
