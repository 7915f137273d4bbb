from __future__ import annotations

import asyncio

import pytest

from agents.errors import AssetNotFoundError, RangeNotSatisfiableError
from conftest import ScriptedOracle, decision
from telephony.media import EphemeralAudioStore, MediaLibrary, parse_range_header
from telephony.twiml import Play, PublicUrls, Say

PAYLOAD = bytes(range(256)) * 4  # 1024 bytes, every offset distinguishable


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        (None, None),
        ("", None),
        ("items=0-5", None),
        ("bytes=abc-def", None),
        ("bytes=200-299", (200, 299)),
        ("bytes=900-", (900, 999)),
        ("bytes=-100", (900, 999)),
        ("bytes=-5000", (0, 999)),
        ("bytes=990-5000", (990, 999)),
        ("bytes=0-0, 10-20", (0, 0)),
    ],
)
def test_parse_range_header(header, expected):
    assert parse_range_header(header, 1000) == expected


@pytest.mark.parametrize("header", ["bytes=1000-", "bytes=500-100", "bytes=-0"])
def test_unsatisfiable_ranges(header):
    with pytest.raises(RangeNotSatisfiableError) as excinfo:
        parse_range_header(header, 1000)
    assert excinfo.value.size == 1000


def test_ephemeral_audio_is_evicted_after_ttl(tmp_path):
    store = EphemeralAudioStore(tmp_path, ttl_seconds=0.05)

    async def scenario() -> str:
        name = await store.put(b"audio-bytes")
        assert store.resolve(name).read_bytes() == b"audio-bytes"
        await asyncio.sleep(0.2)
        return name

    name = asyncio.run(scenario())
    assert not (tmp_path / name).exists()
    assert len(store) == 0
    with pytest.raises(AssetNotFoundError):
        store.resolve(name)


def test_eviction_tolerates_missing_file(tmp_path):
    store = EphemeralAudioStore(tmp_path, ttl_seconds=0.01)

    async def scenario() -> None:
        name = await store.put(b"gone", suffix=".wav")
        (tmp_path / name).unlink()
        await asyncio.sleep(0.05)

    asyncio.run(scenario())
    assert len(store) == 0


def test_same_audio_maps_to_same_name(tmp_path):
    store = EphemeralAudioStore(tmp_path, ttl_seconds=60)

    async def scenario() -> tuple[str, str]:
        return await store.put(b"hello"), await store.put(b"hello")

    first, second = asyncio.run(scenario())
    assert first == second
    assert len(store) == 1
    store.close()
    assert list(tmp_path.iterdir()) == []


def test_concurrent_puts_of_same_audio_all_succeed(tmp_path):
    store = EphemeralAudioStore(tmp_path, ttl_seconds=60)

    async def scenario() -> list[str]:
        return await asyncio.gather(*(store.put(b"same prompt") for _ in range(20)))

    names = asyncio.run(scenario())
    assert set(names) == {names[0]}
    assert (tmp_path / names[0]).read_bytes() == b"same prompt"
    assert [path.name for path in tmp_path.iterdir()] == [names[0]]
    store.close()


@pytest.mark.parametrize("name", ["../secret.mp3", ".hidden", ""])
def test_resolve_rejects_path_tricks(tmp_path, name):
    with pytest.raises(AssetNotFoundError):
        EphemeralAudioStore(tmp_path, ttl_seconds=1).resolve(name)


def test_prompt_prefers_recording_and_falls_back_to_speech(media, tmp_path):
    assert isinstance(media.prompt("greet"), Say)
    (tmp_path / "prompts" / "greet.mp3").write_bytes(b"ID3")
    played = media.prompt("greet")
    assert isinstance(played, Play)
    assert played.url.endswith("/api/audio/greet.mp3")
    assert media.prompt_inventory()[:2] == ["greet.mp3", "MISSING: hold.mp3"]


def test_hold_music_selection_priority(tmp_path):
    hold = tmp_path / "hold"
    hold.mkdir()
    library = MediaLibrary(tmp_path, hold, PublicUrls(base_url="https://x"))
    with pytest.raises(AssetNotFoundError):
        library.hold_music_path()

    (hold / "a-jazz.mp3").write_bytes(b"1")
    assert library.hold_music_path().name == "a-jazz.mp3"
    (hold / "hold-35min.mp3").write_bytes(b"1")
    (hold / "hold-compressed.mp3").write_bytes(b"1")
    (hold / "notes.txt").write_bytes(b"1")
    assert library.hold_music_path().name == "hold-compressed.mp3"
    (hold / "hold-tiny.mp3").write_bytes(b"1")
    assert library.hold_music_path().name == "hold-tiny.mp3"


def _write_prompt(settings, name: str, data: bytes = PAYLOAD[:1000]) -> None:
    (settings.prompts_audio_dir / name).write_bytes(data)


def test_range_request_returns_partial_content(client, screening):
    _write_prompt(screening.settings, "greet.mp3")

    resp = client.get("/api/audio/greet.mp3", headers={"Range": "bytes=200-299"})

    assert resp.status_code == 206
    assert resp.headers["content-range"] == "bytes 200-299/1000"
    assert resp.headers["content-length"] == "100"
    assert resp.headers["accept-ranges"] == "bytes"
    assert resp.content == PAYLOAD[200:300]


def test_full_request_streams_whole_asset(client, screening):
    _write_prompt(screening.settings, "hold.mp3")

    resp = client.get("/api/audio/hold.mp3")

    assert resp.status_code == 200
    assert resp.headers["content-length"] == "1000"
    assert resp.headers["cache-control"] == "public, max-age=3600"
    assert resp.headers["content-type"].startswith("audio/mpeg")
    assert resp.content == PAYLOAD[:1000]


def test_missing_asset_is_404(client):
    resp = client.get("/api/audio/nope.mp3")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Audio file not found: nope.mp3"


def test_unsatisfiable_range_is_416(client, screening):
    _write_prompt(screening.settings, "deny.mp3")

    resp = client.get("/api/audio/deny.mp3", headers={"Range": "bytes=5000-"})

    assert resp.status_code == 416
    assert resp.headers["content-range"] == "bytes */1000"


def test_hold_music_route_serves_selected_file(client, screening):
    (screening.settings.hold_music_dir / "music-micro.mp3").write_bytes(b"tune")

    resp = client.get("/api/hold-music", headers={"Range": "bytes=1-2"})

    assert resp.status_code == 206
    assert resp.content == b"un"


def test_temp_audio_route_is_not_cached(client, screening):
    screening.oracle = ScriptedOracle(decision("What is your name?"))
    screening.store.create("CA-temp", "+15550000001")

    twiml = client.post("/api/twilio/voice-response/CA-temp", data={"SpeechResult": "hello"}).text
    url = twiml.split("<Play>")[1].split("</Play>")[0]
    path = url.split("https://screen.example.com", 1)[1]

    resp = client.get(path)
    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "no-cache"
    assert resp.content == b"ID3What is your name?"
