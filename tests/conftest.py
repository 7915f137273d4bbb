from __future__ import annotations

import os
import sys
from collections.abc import Sequence
from pathlib import Path
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from agents.actions import CallControl, ScreeningPolicy  # noqa: E402
from agents.errors import SynthesisFailureError, TelephonyError  # noqa: E402
from agents.schemas import OracleDecision  # noqa: E402
from agents.sessions import SessionStore, Turn  # noqa: E402
from integrations.twilio_client import TelephonyGateway  # noqa: E402
from speech.tts import BaseSynthesizer  # noqa: E402
from telephony.media import EphemeralAudioStore, MediaLibrary  # noqa: E402
from telephony.twiml import Instruction, PublicUrls  # noqa: E402

RECIPIENT = "+15550001111"
SERVICE_NUMBER = "+15550002222"
BASE_URL = "https://screen.example.com"


class FakeGateway(TelephonyGateway):
    """Records telephony requests instead of calling Twilio."""

    def __init__(self) -> None:
        self.updates: list[tuple[str, list[Instruction]]] = []
        self.messages: list[tuple[str, str]] = []
        self.fail_updates = False
        self.fail_messages = False

    async def update_call(self, call_id: str, instructions: Sequence[Instruction]) -> None:
        if self.fail_updates:
            raise TelephonyError(f"update of {call_id} failed")
        self.updates.append((call_id, list(instructions)))

    async def send_message(self, to: str, body: str) -> None:
        if self.fail_messages:
            raise TelephonyError(f"sms to {to} failed")
        self.messages.append((to, body))


class ScriptedOracle:
    """Returns queued decisions in order; the last one repeats. Exceptions are raised."""

    def __init__(self, *decisions: OracleDecision | Exception) -> None:
        self.decisions = list(decisions)
        self.seen: list[list[Turn]] = []

    async def generate(self, caller_address: str, turns: Sequence[Turn]) -> OracleDecision:
        self.seen.append(list(turns))
        item = self.decisions.pop(0) if len(self.decisions) > 1 else self.decisions[0]
        if isinstance(item, Exception):
            raise item
        return item


class FakeSynthesizer(BaseSynthesizer):
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.texts: list[str] = []

    async def synthesize(self, text: str) -> bytes:
        if self.fail:
            raise SynthesisFailureError("tts unavailable")
        self.texts.append(text)
        return b"ID3" + text.encode("utf-8")


class FakeBlockList:
    def __init__(self) -> None:
        self.entries: dict[str, tuple[str | None, str | None]] = {}

    async def block(self, phone_number: str, *, caller_name=None, call_sid=None):
        self.entries.setdefault(phone_number, (caller_name, call_sid))
        return self.entries[phone_number]

    async def is_blocked(self, phone_number: str) -> bool:
        return phone_number in self.entries


def decision(reply: str = "", *actions: dict) -> OracleDecision:
    return OracleDecision.model_validate({"reply": reply, "actions": list(actions)})


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def store() -> SessionStore:
    return SessionStore()


@pytest.fixture()
def media(tmp_path: Path) -> MediaLibrary:
    prompts = tmp_path / "prompts"
    hold = tmp_path / "hold"
    prompts.mkdir()
    hold.mkdir()
    return MediaLibrary(prompts, hold, PublicUrls(base_url=BASE_URL))


@pytest.fixture()
def control(gateway: FakeGateway, media: MediaLibrary) -> CallControl:
    return CallControl(gateway, media, ScreeningPolicy(recipient=RECIPIENT, caller_id=SERVICE_NUMBER))


@pytest.fixture()
def audio_store(tmp_path: Path) -> EphemeralAudioStore:
    return EphemeralAudioStore(tmp_path / "temp", ttl_seconds=60)


@pytest.fixture(scope="session")
def app(tmp_path_factory: pytest.TempPathFactory):
    tmp_dir = tmp_path_factory.mktemp("runtime")
    db_path = tmp_dir / "screening_test.db"

    # Must be set before importing modules that create the SQLAlchemy engine.
    os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{db_path.as_posix()}"
    os.environ["DATA_DIR"] = str(tmp_dir)
    os.environ["PROMPTS_AUDIO_DIR"] = str(tmp_dir / "audio")
    os.environ["HOLD_MUSIC_DIR"] = str(tmp_dir / "hold")
    os.environ["TEMP_AUDIO_DIR"] = str(tmp_dir / "temp")
    os.environ["PUBLIC_BASE_URL"] = BASE_URL
    os.environ["RECIPIENT_PHONE_NUMBER"] = RECIPIENT
    os.environ["TWILIO_FROM_NUMBER"] = SERVICE_NUMBER
    # Ensure tests can rely on the schema existing without running Alembic.
    os.environ["AUTO_CREATE_DB_SCHEMA"] = "true"

    import importlib

    # Ensure clean import with the test DB settings.
    for module_name in [
        "config.settings",
        "db.base",
        "db.models",
        "db.repository",
        "api.dependencies",
        "api.routes",
        "api.twilio_routes",
        "main",
    ]:
        sys.modules.pop(module_name, None)

    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def screening(app, gateway: FakeGateway, store: SessionStore):
    """Wires fresh fakes into the app; tests set ``screening.oracle`` before calling."""

    import api.dependencies as deps
    from agents.orchestrator import TurnOrchestrator
    from agents.reconciliation import NotificationReconciler
    from config.settings import get_settings

    settings = get_settings()
    library = deps.get_media_library()
    call_control = CallControl(
        gateway,
        library,
        ScreeningPolicy(recipient=RECIPIENT, caller_id=SERVICE_NUMBER),
    )
    temp_store = EphemeralAudioStore(settings.temp_audio_dir, ttl_seconds=60)

    wiring = SimpleNamespace(
        oracle=ScriptedOracle(decision("Could you tell me your name?")),
        synthesizer=FakeSynthesizer(),
        block_list=FakeBlockList(),
        gateway=gateway,
        store=store,
        settings=settings,
    )

    app.dependency_overrides[deps.get_session_store] = lambda: store
    app.dependency_overrides[deps.get_call_control] = lambda: call_control
    app.dependency_overrides[deps.get_audio_store] = lambda: temp_store
    app.dependency_overrides[deps.get_block_list] = lambda: wiring.block_list
    app.dependency_overrides[deps.get_synthesizer] = lambda: wiring.synthesizer
    app.dependency_overrides[deps.get_orchestrator] = lambda: TurnOrchestrator(
        store, wiring.oracle, call_control, wiring.synthesizer, temp_store
    )
    app.dependency_overrides[deps.get_reconciler] = lambda: NotificationReconciler(
        store, call_control, wiring.block_list
    )

    yield wiring

    temp_store.close()
    app.dependency_overrides.clear()
    for directory in (settings.prompts_audio_dir, settings.hold_music_dir):
        for path in directory.iterdir():
            path.unlink()


@pytest.fixture()
def client(app, screening):
    with TestClient(app) as test_client:
        yield test_client
