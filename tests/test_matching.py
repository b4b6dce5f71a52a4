import pytest
from proximity_notifier.models.notification_attempt import AttemptOutcome, NotificationAttempt
from proximity_notifier.services.admission import OUTSIDE_WINDOW, QUOTA_EXCEEDED
from proximity_notifier.services.directory import DirectoryLookupError
from proximity_notifier.services.matching import MatchingEngine
from proximity_notifier.services.push_gateway import InvalidPushDestinationError
from conftest import MANCHESTER_COORDS, NOW, FakeDirectory, FakeGateway, make_event, make_profile


def _engine(profiles, ledger, config, gateway=None, stale_tokens=None, fail=False):
    directory = FakeDirectory(profiles, fail=fail)
    gateway = gateway or FakeGateway()
    return MatchingEngine(directory, ledger, gateway, config=config, stale_tokens=stale_tokens), gateway


@pytest.mark.asyncio
async def test_london_gospel_fan_is_notified_and_manchester_user_is_not(ledger, matching_config, stale_tokens):
    user_a = make_profile(
        "user-a",
        latitude=51.5074,
        longitude=-0.1278,
        preferred_categories={"Gospel Concert"},
    )
    user_b = make_profile(
        "user-b",
        location_city_name="Manchester",
        latitude=MANCHESTER_COORDS[0],
        longitude=MANCHESTER_COORDS[1],
    )
    engine, gateway = _engine([user_a, user_b], ledger, matching_config, stale_tokens=stale_tokens)

    report = await engine.run(make_event(), now=NOW)

    assert report.candidates == 1
    assert report.admitted == 1
    assert [(o.user_id, o.outcome) for o in report.outcomes] == [("user-a", "delivered")]
    [sent] = gateway.sent
    assert sent["to"] == "ExponentPushToken[user-a]"
    assert sent["title"] == "New Gospel Concert in London!"
    assert sent["deep_link"] == "soundbridge://event/evt-1"

    [row] = await ledger.list_attempts(event_id="evt-1")
    assert row.user_id == "user-a"
    assert row.outcome == AttemptOutcome.DELIVERED.value
    assert await ledger.list_attempts(user_id="user-b") == []


@pytest.mark.asyncio
async def test_running_the_same_event_twice_sends_once(ledger, matching_config):
    engine, gateway = _engine([make_profile("user-a")], ledger, matching_config)

    first = await engine.run(make_event(), now=NOW)
    second = await engine.run(make_event(), now=NOW)

    assert first.count("delivered") == 1
    assert second.count("skipped-duplicate") == 1
    assert len(gateway.sent) == 1
    delivered = await ledger.list_attempts(event_id="evt-1", outcome=AttemptOutcome.DELIVERED.value)
    assert len(delivered) == 1


@pytest.mark.asyncio
async def test_user_in_neighbouring_town_within_radius_is_a_candidate(ledger, matching_config):
    # Croydon is about 15km from central London and lists its own city name.
    croydon = make_profile("croydon", location_city_name="Croydon", latitude=51.3762, longitude=-0.0982)
    engine, gateway = _engine([croydon], ledger, matching_config)

    report = await engine.run(make_event(), now=NOW)

    assert report.candidates == 1
    assert report.count("delivered") == 1
    assert gateway.sent[0]["body"].endswith("km away)")


@pytest.mark.asyncio
async def test_report_counts_each_stage(ledger, matching_config):
    await ledger.record(NotificationAttempt(
        event_id="earlier", user_id="quota", outcome=AttemptOutcome.DELIVERED.value, sent_at=NOW, attempts=1, detail={},
    ))
    profiles = [
        make_profile("ok"),
        make_profile("muted", notifications_enabled=False),
        make_profile("jazz-only", preferred_categories={"Jazz Room"}),
        make_profile("no-token", push_destination=None),
        make_profile("night", timezone="America/Los_Angeles"),
        make_profile("quota"),
    ]
    engine, _ = _engine(profiles, ledger, matching_config.model_copy(update={"daily_limit": 1}))

    report = await engine.run(make_event(), now=NOW)

    assert report.candidates == 6
    assert report.filtered_out == 3
    assert report.rejected == {OUTSIDE_WINDOW: 1, QUOTA_EXCEEDED: 1}
    assert report.admitted == 1
    assert [(o.user_id, o.outcome) for o in report.outcomes] == [("ok", "delivered")]


@pytest.mark.asyncio
async def test_one_bad_destination_does_not_block_the_rest(ledger, matching_config, stale_tokens):
    gateway = FakeGateway({
        "ExponentPushToken[stale]": InvalidPushDestinationError("gone", reason="DeviceNotRegistered"),
    })
    profiles = [make_profile("a"), make_profile("stale"), make_profile("b")]
    engine, _ = _engine(profiles, ledger, matching_config, gateway=gateway, stale_tokens=stale_tokens)

    report = await engine.run(make_event(), now=NOW)

    assert report.count("delivered") == 2
    assert report.count("failed") == 1
    assert [p["user_id"] for p in stale_tokens.published] == ["stale"]


@pytest.mark.asyncio
async def test_directory_failure_aborts_before_any_send(ledger, matching_config):
    engine, gateway = _engine([make_profile("a")], ledger, matching_config, fail=True)

    with pytest.raises(DirectoryLookupError):
        await engine.run(make_event(), now=NOW)

    assert gateway.calls == []
    assert await ledger.list_attempts() == []


@pytest.mark.asyncio
async def test_event_without_location_notifies_nobody(ledger, matching_config, caplog):
    engine, gateway = _engine([make_profile("a")], ledger, matching_config)

    report = await engine.run(make_event(city_name=None, latitude=None, longitude=None), now=NOW)

    assert report.candidates == 0
    assert report.outcomes == []
    assert gateway.calls == []
    assert "no candidates" in caplog.text
