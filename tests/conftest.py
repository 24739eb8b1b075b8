"""Shared fixtures: recording collaborators and small Telegram stand-ins."""

from __future__ import annotations

from datetime import date
from types import SimpleNamespace

import pytest

from config import Settings, UserEntry
from alp_bot.expenses.draft import InvoiceDraft
from alp_bot.services.api import APIError
from alp_bot.services.demo_backend import InMemoryBackend
from alp_bot.services.notifier import Notifier, Severity
from alp_bot.services.users import ROLE_DIRECTOR, ROLE_TECHNICIAN, UserContext

TECH_TG_ID = 1001
DIRECTOR_TG_ID = 2002


class RecordingNotifier(Notifier):
    def __init__(self):
        self.messages: list[tuple[Severity, str]] = []

    async def notify(self, message: str, severity: Severity = Severity.INFO):
        self.messages.append((Severity(severity), message))

    @property
    def last(self):
        return self.messages[-1] if self.messages else None


class RecordingBackend(InMemoryBackend):
    """Demo backend that remembers every invoice payload it was sent."""

    def __init__(self, data=None):
        super().__init__(data)
        self.created: list[dict] = []

    async def create_invoice(self, payload: dict) -> dict:
        self.created.append(payload)
        return await super().create_invoice(payload)


class FailingBackend(InMemoryBackend):
    def __init__(self, error: APIError | None = None):
        super().__init__()
        self.error = error or APIError("Vendor is blocked", 422)
        self.calls = 0

    async def create_invoice(self, payload: dict) -> dict:
        self.calls += 1
        raise self.error


class FakeChat:
    def __init__(self, chat_id: int = 555):
        self.id = chat_id
        self.sent: list[dict] = []
        self.documents: list[dict] = []

    async def send_message(self, text, reply_markup=None, **kwargs):
        self.sent.append({"text": text, "reply_markup": reply_markup})

    async def send_document(self, document=None, filename=None, caption=None, **kwargs):
        self.documents.append({"filename": filename, "caption": caption, "content": document.read()})

    @property
    def texts(self) -> list[str]:
        return [m["text"] for m in self.sent]


class FakeMessage:
    def __init__(self, chat: FakeChat, text: str = "", document=None):
        self.chat = chat
        self.text = text
        self.document = document

    async def reply_text(self, text, reply_markup=None, **kwargs):
        await self.chat.send_message(text, reply_markup=reply_markup)


class FakeQuery:
    def __init__(self, data: str, user_id: int):
        self.data = data
        self.from_user = SimpleNamespace(id=user_id)
        self.message = None
        self.answered = False

    async def answer(self, *args, **kwargs):
        self.answered = True


class FakeFile:
    def __init__(self, content: bytes):
        self.content = content

    async def download_to_drive(self, custom_path=None, **kwargs):
        with open(custom_path, "wb") as f:
            f.write(self.content)


class FakeBot:
    """Serves uploaded files by file_id."""

    def __init__(self):
        self.files: dict[str, bytes] = {}

    def upload(self, file_name: str, content: bytes, mime_type: str = "application/pdf"):
        file_id = f"file-{len(self.files) + 1}"
        self.files[file_id] = content
        return SimpleNamespace(file_id=file_id, file_name=file_name, mime_type=mime_type)

    async def get_file(self, file_id):
        return FakeFile(self.files[file_id])


def make_update(chat: FakeChat, user_id: int, text: str = "", callback: str | None = None, document=None):
    return SimpleNamespace(
        effective_chat=chat,
        effective_user=SimpleNamespace(id=user_id),
        message=FakeMessage(chat, text, document),
        callback_query=FakeQuery(callback, user_id) if callback is not None else None,
    )


def make_context(args=None):
    return SimpleNamespace(user_data={}, args=list(args or []), bot=FakeBot())


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def failing_backend():
    return FailingBackend()


@pytest.fixture
def technician():
    return UserContext(TECH_TG_ID, "3", "Petar Technician", ROLE_TECHNICIAN)


@pytest.fixture
def director():
    return UserContext(DIRECTOR_TG_ID, "1", "Georgi Director", ROLE_DIRECTOR)


@pytest.fixture
def settings():
    return Settings(
        telegram_bot_token="test-token",
        directors=(UserEntry(DIRECTOR_TG_ID, "1", "Georgi Director"),),
        technicians=(UserEntry(TECH_TG_ID, "3", "Petar Technician"),),
    )


@pytest.fixture
def chat():
    return FakeChat()


@pytest.fixture
def ready_draft():
    """The ACME invoice: one valid line, one blank line, whole-invoice to site-1."""
    draft = InvoiceDraft()
    draft.set_date(date(2025, 1, 10))
    draft.set_vendor("ACME")
    draft.set_payment_method("cash")
    first = draft.positions[0]
    draft.update_position(first.id, "description", "Cable")
    draft.update_position(first.id, "quantity", "2")
    draft.update_position(first.id, "unit_price", "10")
    draft.add_position()
    draft.select_whole_object("site-1")
    return draft


@pytest.fixture
def update_factory(chat):
    def factory(user_id: int = TECH_TG_ID, text: str = "", callback: str | None = None, document=None):
        return make_update(chat, user_id, text, callback, document)
    return factory


@pytest.fixture
def context():
    return make_context()
