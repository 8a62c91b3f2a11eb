import copy
import io
import os
from typing import Any

import docx
from pypdf import PdfReader, PdfWriter
from redis.exceptions import ConnectionError

from permits.firebase import EmailAlreadyExists, UserNotFound

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "templates")


def assert_ok(response):
    assert response.status_code == 200, f"{response.status_code}: {response.content}"


def blank_pdf(pages: int = 1) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)
    output = io.BytesIO()
    writer.write(output)
    return output.getvalue()


class FakeDatabase:
    """
    An in-memory Realtime Database, with the same interface as permits.firebase.RealtimeDatabase.
    """

    def __init__(self, data: dict[str, Any] | None = None):
        self.data = data or {}
        self.pushed = 0

    @staticmethod
    def _parts(path: str) -> list[str]:
        return [part for part in path.split("/") if part]

    def _node(self, parts: list[str], *, create: bool = False) -> Any:
        node = self.data
        for part in parts:
            if not isinstance(node, dict):
                return None
            if part not in node:
                if not create:
                    return None
                node[part] = {}
            node = node[part]
        return node

    def get(self, path: str) -> Any:
        return copy.deepcopy(self._node(self._parts(path)))

    def set(self, path: str, value: Any) -> None:
        *parents, last = self._parts(path)
        self._node(parents, create=True)[last] = copy.deepcopy(value)

    def update(self, path: str, value: dict[str, Any]) -> None:
        node = self._node(self._parts(path), create=True)
        for key, item in value.items():
            # Like Firebase, writing null deletes the child.
            if item is None:
                node.pop(key, None)
            else:
                node[key] = copy.deepcopy(item)

    def delete(self, path: str) -> None:
        *parents, last = self._parts(path)
        if isinstance(parent := self._node(parents), dict):
            parent.pop(last, None)

    def push(self, path: str, value: Any) -> str:
        self.pushed += 1
        key = f"-key{self.pushed:04d}"
        self.set(f"{path}/{key}", value)
        return key

    def find(self, path: str, child: str, value: Any) -> dict[str, Any]:
        node = self.get(path)
        if not isinstance(node, dict):
            return {}
        return {key: item for key, item in node.items() if isinstance(item, dict) and item.get(child) == value}


class FakeIdentity:
    """
    An in-memory Firebase Auth, with the same interface as permits.firebase.IdentityClient.
    """

    def __init__(self):
        self.users: dict[str, dict[str, Any]] = {}

    def _check_email(self, email: str, uid: str | None = None) -> None:
        for other_uid, user in self.users.items():
            if user["email"] == email and other_uid != uid:
                raise EmailAlreadyExists("Email is already in use by another account.")

    def create_user(self, *, email: str, password: str, email_verified: bool, display_name: str) -> str:
        self._check_email(email)
        uid = f"auth-{len(self.users) + 1}"
        self.users[uid] = {
            "email": email,
            "password": password,
            "email_verified": email_verified,
            "display_name": display_name,
        }
        return uid

    def update_user(self, uid: str, **kwargs: Any) -> None:
        if uid not in self.users:
            raise UserNotFound("Auth user not found")
        if "email" in kwargs:
            self._check_email(kwargs["email"], uid)
        self.users[uid].update(kwargs)

    def delete_user(self, uid: str) -> None:
        if uid not in self.users:
            raise UserNotFound("Auth user not found")
        del self.users[uid]

    def get_uid_by_email(self, email: str) -> str | None:
        return next((uid for uid, user in self.users.items() if user["email"] == email), None)


class FakeRedis:
    """
    An in-memory Redis client, with the methods used by permits.cache.PreviewCache.
    """

    def __init__(self, *, available: bool = True):
        self.available = available
        self.values: dict[str, bytes] = {}
        self.ttls: dict[str, int] = {}
        self.closed = False

    def _check(self) -> None:
        if not self.available:
            raise ConnectionError("Connection refused")

    async def ping(self) -> bool:
        self._check()
        return True

    async def get(self, key: str) -> bytes | None:
        self._check()
        return self.values.get(key)

    async def setex(self, key: str, ttl: int, value: bytes) -> bool:
        self._check()
        self.values[key] = value
        self.ttls[key] = ttl
        return True

    async def aclose(self) -> None:
        self.closed = True


def docx_text(content: bytes) -> str:
    document = docx.Document(io.BytesIO(content))
    texts = [paragraph.text for paragraph in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            texts.extend(cell.text for cell in row.cells)
    return "\n".join(texts)


def pdf_pages(content: bytes) -> int:
    return len(PdfReader(io.BytesIO(content)).pages)


def docx_template(*paragraphs: str, gridless_table: bool = False) -> bytes:
    document = docx.Document()
    for paragraph in paragraphs:
        document.add_paragraph(paragraph)
    if gridless_table:
        table = document.add_table(rows=1, cols=2)
        table._tbl.remove(table._tbl.tblGrid)
    content = io.BytesIO()
    document.save(content)
    return content.getvalue()
