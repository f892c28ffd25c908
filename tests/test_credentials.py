import asyncio
import json
from dataclasses import replace

import pytest

from conftest import CREDENTIALS, HANG, HEALTHY
from services.provider.credentials import CredentialService
from services.provider.models import CredentialSet
from services.provider.remote import RemoteCallError
from shared.storage.state_publisher import DashboardStatePublisher


def _service(remote, settings, sleep, clock, **kwargs):
    return CredentialService(remote, settings, sleep=sleep, clock=clock, **kwargs)


def _assert_populated(creds: CredentialSet) -> None:
    assert isinstance(creds, CredentialSet)
    assert creds.ingest_url and creds.stream_key and creds.embed_url
    assert creds.health_status


@pytest.mark.asyncio
async def test_healthy_provider_returns_real_credentials(remote, settings, sleep, clock):
    remote.set("stream-health", HEALTHY)
    remote.set("stream-credentials", CREDENTIALS)
    service = _service(remote, settings, sleep, clock)

    creds = await service.get_stream_info()

    assert creds.using_fallback is False
    assert creds.health_status == "healthy"
    assert creds.stream_key == "sk_live_abcdef123456"
    assert service.escalation.consecutive_failures == 0


@pytest.mark.asyncio
async def test_cache_hit_within_ttl_makes_no_remote_calls(remote, settings, sleep, clock):
    remote.set("stream-health", HEALTHY)
    remote.set("stream-credentials", CREDENTIALS)
    service = _service(remote, settings, sleep, clock)

    first = await service.get_stream_info()
    calls_after_first = len(remote.calls)
    clock.advance(240)
    second = await service.get_stream_info()

    assert second == first
    assert len(remote.calls) == calls_after_first


@pytest.mark.asyncio
async def test_two_failures_then_fetch_is_skipped(remote, settings, sleep, clock):
    remote.set("stream-health", asyncio.TimeoutError())
    remote.set("stream-credentials", asyncio.TimeoutError())
    service = _service(remote, settings, sleep, clock)

    first = await service.get_stream_info()
    # probe exhaustion + failed fetch = 2 consecutive failures
    assert service.escalation.fallback_active is True
    assert first.using_fallback is True
    assert first.health_status == "error"
    assert remote.count("stream-credentials") == 1

    clock.advance(301)
    third = await service.get_stream_info()

    assert remote.count("stream-credentials") == 1
    assert third.using_fallback is True
    assert third.health_status == "fallback"
    assert third.ingest_url == settings.fallback.ingest_url


@pytest.mark.asyncio
async def test_expired_entry_is_served_when_fetch_fails(remote, settings, sleep, clock):
    remote.set("stream-health", HEALTHY)
    remote.set("stream-credentials", CREDENTIALS)
    service = _service(remote, settings, sleep, clock)
    original = await service.get_stream_info()

    clock.advance(600)
    remote.set("stream-credentials", RemoteCallError("502", status_code=502))
    creds = await service.get_stream_info()

    assert creds == original
    assert creds.using_fallback is False
    assert service.escalation.consecutive_failures == 1


@pytest.mark.asyncio
async def test_unhealthy_provider_short_circuits_to_fallback(remote, settings, sleep, clock):
    remote.set("stream-health", {**HEALTHY, "status": "unhealthy"})
    remote.set("stream-credentials", CREDENTIALS)
    service = _service(remote, settings, sleep, clock)

    creds = await service.get_stream_info()

    assert remote.count("stream-credentials") == 0
    assert creds.using_fallback is True
    assert creds.health_status == "fallback"
    assert service.cache.get() == creds


@pytest.mark.asyncio
async def test_recovery_after_escalation(remote, settings, sleep, clock):
    remote.set("stream-health", ConnectionError("down"))
    remote.set("stream-credentials", ConnectionError("down"))
    service = _service(remote, settings, sleep, clock)
    await service.get_stream_info()
    assert service.escalation.fallback_active is True

    clock.advance(301)
    remote.set("stream-health", HEALTHY)
    remote.set("stream-credentials", CREDENTIALS)
    creds = await service.get_stream_info()

    assert creds.using_fallback is False
    assert service.escalation.snapshot()["consecutive_failures"] == 0
    assert service.escalation.fallback_active is False


@pytest.mark.asyncio
async def test_incomplete_credentials_are_treated_as_failure(remote, settings, sleep, clock):
    remote.set("stream-health", HEALTHY)
    remote.set("stream-credentials", {"ingestUrl": "rtmps://x", "streamKey": ""})
    service = _service(remote, settings, sleep, clock)

    creds = await service.get_stream_info()

    assert creds.using_fallback is True
    assert creds.health_status == "error"
    assert service.escalation.consecutive_failures == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "health_outcomes,credential_outcome",
    [
        ([HEALTHY], CREDENTIALS),
        ([HEALTHY], ConnectionError("x")),
        ([ConnectionError("x")], CREDENTIALS),
        ([asyncio.TimeoutError()], asyncio.TimeoutError()),
        ([{**HEALTHY, "status": "unhealthy"}], CREDENTIALS),
    ],
)
async def test_results_are_never_empty(
    remote, settings, sleep, clock, health_outcomes, credential_outcome
):
    service = _service(remote, settings, sleep, clock)

    for _ in range(3):
        for outcome in health_outcomes:
            remote.set("stream-health", outcome)
        remote.set("stream-credentials", credential_outcome)
        _assert_populated(await service.get_stream_info())
        status = await service.check_stream_status("stream-1")
        assert status.viewer_count >= 0
        clock.advance(301)


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_resolution(remote, settings, sleep, clock):
    remote.set("stream-health", HEALTHY)
    remote.set("stream-credentials", CREDENTIALS)
    service = _service(remote, settings, sleep, clock)

    results = await asyncio.gather(*(service.get_stream_info() for _ in range(5)))

    assert len(set(results)) == 1
    assert remote.count("stream-health") == 1
    assert remote.count("stream-credentials") == 1


@pytest.mark.asyncio
async def test_unexpected_error_degrades_to_static_fallback(
    remote, settings, sleep, clock, monkeypatch
):
    service = _service(remote, settings, sleep, clock)

    async def broken_probe():
        raise RuntimeError("bug")

    monkeypatch.setattr(service.prober, "probe", broken_probe)

    creds = await service.get_stream_info()

    assert creds.using_fallback is True
    assert creds.health_status == "error"
    assert service.escalation.consecutive_failures == 1


@pytest.mark.asyncio
async def test_unexpected_error_serves_stale_cache(
    remote, settings, sleep, clock, monkeypatch
):
    remote.set("stream-health", HEALTHY)
    remote.set("stream-credentials", CREDENTIALS)
    service = _service(remote, settings, sleep, clock)
    original = await service.get_stream_info()

    async def broken_probe():
        raise RuntimeError("bug")

    monkeypatch.setattr(service.prober, "probe", broken_probe)
    clock.advance(600)

    creds = await service.get_stream_info()

    assert creds == original
    assert service.cache.get() == original
    assert service.escalation.consecutive_failures == 1


@pytest.mark.asyncio
async def test_hung_fetch_is_cancelled_and_serves_stale_cache(
    remote, settings, sleep, clock
):
    fast = replace(
        settings,
        retry=replace(settings.retry, connection_timeout_seconds=0.01),
    )
    remote.set("stream-health", HEALTHY)
    remote.set("stream-credentials", CREDENTIALS)
    service = _service(remote, fast, sleep, clock)
    original = await service.get_stream_info()

    clock.advance(600)
    remote.set("stream-credentials", HANG)
    creds = await service.get_stream_info()

    assert creds == original
    assert remote.count("stream-credentials") == 2
    assert service.escalation.consecutive_failures == 1


@pytest.mark.asyncio
async def test_hung_fetch_without_cache_serves_static_fallback(
    remote, settings, sleep, clock
):
    fast = replace(
        settings,
        retry=replace(settings.retry, connection_timeout_seconds=0.01),
    )
    remote.set("stream-health", HEALTHY)
    remote.set("stream-credentials", HANG)
    service = _service(remote, fast, sleep, clock)

    creds = await service.get_stream_info()

    assert creds.using_fallback is True
    assert creds.health_status == "error"
    assert creds.stream_key == settings.fallback.stream_key
    assert service.escalation.consecutive_failures == 1


@pytest.mark.asyncio
async def test_snapshot_is_published_with_masked_key(
    remote, settings, sleep, clock, tmp_path
):
    remote.set("stream-health", HEALTHY)
    remote.set("stream-credentials", CREDENTIALS)
    publisher = DashboardStatePublisher(base_dir=tmp_path)
    service = _service(remote, settings, sleep, clock, publisher=publisher)

    await service.get_stream_info()

    data = json.loads((tmp_path / "provider_health.json").read_text(encoding="utf-8"))
    assert data["escalation"]["fallback_active"] is False
    assert data["last_check"]["status"] == "healthy"
    assert data["credentials"]["stream_key"].startswith("sk_l")
    assert "abcdef123456" not in data["credentials"]["stream_key"]
