"""
Location sampler tests.

Covers the unsupported platform, error handling that keeps the last
known coordinates, and release of the platform watch on teardown.
"""

import asyncio

import pytest

from tracking_backend.app.core.exceptions import PositioningFailure, PositioningUnavailable
from tracking_backend.app.services.geolocation import (
    Position, PositionError, PositionErrorCode, ScriptedGeolocationProvider
)
from tracking_backend.app.services.location_sampler import LocationSampler, SamplerOptions


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def test_unsupported_platform_sets_error_without_raising():
    sampler = LocationSampler(None)

    state = sampler.begin_sampling(SamplerOptions(watch=True))

    assert state.error == LocationSampler.UNSUPPORTED_MESSAGE
    assert state.loading is False
    assert state.latitude is None and state.longitude is None
    assert isinstance(sampler.last_error, PositioningUnavailable)
    assert sampler.active is False


def test_initial_state_is_loading(geolocation):
    sampler = LocationSampler(geolocation)
    assert sampler.state.loading is True
    assert sampler.state.has_fix is False
    assert sampler.state.to_location_update() is None


def test_fix_updates_state(geolocation):
    sampler = LocationSampler(geolocation)
    sampler.begin_sampling(SamplerOptions(watch=True))

    geolocation.push(18.5204, 73.8567, accuracy=8.0, heading=90.0, speed=4.2)

    state = sampler.state
    assert (state.latitude, state.longitude) == (18.5204, 73.8567)
    assert state.accuracy == 8.0
    assert state.heading == 90.0
    assert state.speed == 4.2
    assert state.error is None
    assert state.loading is False

    update = state.to_location_update()
    assert update.latitude == 18.5204
    assert update.accuracy == 8.0


def test_error_keeps_previous_coordinates(geolocation):
    sampler = LocationSampler(geolocation)
    sampler.begin_sampling(SamplerOptions(watch=True))
    geolocation.push(18.5204, 73.8567)

    geolocation.push_error(PositionErrorCode.PERMISSION_DENIED, "User denied Geolocation")

    state = sampler.state
    assert state.error == "User denied Geolocation"
    assert (state.latitude, state.longitude) == (18.5204, 73.8567)
    assert state.loading is False
    assert isinstance(sampler.last_error, PositioningFailure)
    assert sampler.last_error.code == "PERMISSION_DENIED"


def test_next_fix_clears_error(geolocation):
    sampler = LocationSampler(geolocation)
    sampler.begin_sampling(SamplerOptions(watch=True))
    geolocation.push_error()

    geolocation.push(18.53, 73.85)

    assert sampler.state.error is None
    assert sampler.last_error is None


def test_stop_releases_watch_and_discards_late_callbacks(geolocation):
    sampler = LocationSampler(geolocation)
    sampler.begin_sampling(SamplerOptions(watch=True))
    (watch_id, (on_success, on_error, _)), = geolocation.watches.items()
    geolocation.push(18.5204, 73.8567)

    sampler.stop()

    assert geolocation.cleared == [watch_id]
    # Platform delivered after teardown
    on_success(Position(latitude=1.0, longitude=2.0))
    on_error(PositionError(PositionErrorCode.TIMEOUT, "Timeout expired"))
    assert (sampler.state.latitude, sampler.state.longitude) == (18.5204, 73.8567)
    assert sampler.state.error is None


def test_stop_is_idempotent(geolocation):
    sampler = LocationSampler(geolocation)
    sampler.begin_sampling(SamplerOptions(watch=True))

    sampler.stop()
    sampler.stop()

    assert len(geolocation.cleared) == 1


def test_restart_releases_previous_watch(geolocation):
    sampler = LocationSampler(geolocation)
    sampler.begin_sampling(SamplerOptions(watch=True, enable_high_accuracy=False))
    first_success = geolocation.watches[1][0]

    sampler.begin_sampling(SamplerOptions(watch=True, enable_high_accuracy=True))

    assert geolocation.cleared == [1]
    assert list(geolocation.watches) == [2]
    assert geolocation.watches[2][2].enable_high_accuracy is True

    first_success(Position(latitude=10.0, longitude=10.0))
    assert sampler.state.has_fix is False


def test_one_shot_request_uses_options(geolocation):
    sampler = LocationSampler(geolocation)

    sampler.begin_sampling(SamplerOptions(timeout=5.0, maximum_age=0.0))

    assert geolocation.watches == {}
    (on_success, _, options), = geolocation.requests
    assert options.timeout == 5.0
    assert options.maximum_age == 0.0

    on_success(Position(latitude=12.97, longitude=77.59))
    assert sampler.state.latitude == 12.97


def test_sampling_context_manager_stops_on_exit(geolocation):
    sampler = LocationSampler(geolocation)

    with sampler.sampling(SamplerOptions(watch=True)) as state:
        geolocation.push(18.5, 73.8)
        assert state.has_fix

    assert geolocation.watches == {}
    assert sampler.active is False


@pytest.mark.asyncio
async def test_scripted_timeout_keeps_last_fix():
    provider = ScriptedGeolocationProvider(
        [Position(latitude=18.5204, longitude=73.8567), None],
        interval=0.01,
    )
    sampler = LocationSampler(provider)

    sampler.begin_sampling(SamplerOptions(watch=True, timeout=0.05))
    await wait_until(lambda: sampler.state.error is not None)

    assert sampler.state.error == "Timeout expired"
    assert (sampler.state.latitude, sampler.state.longitude) == (18.5204, 73.8567)
    assert sampler.last_error.code == "TIMEOUT"
    sampler.stop()


@pytest.mark.asyncio
async def test_scripted_watch_is_cancelled_on_stop():
    provider = ScriptedGeolocationProvider(
        [Position(latitude=18.52, longitude=73.85)],
        interval=0.01,
        loop_script=True,
    )
    sampler = LocationSampler(provider)

    sampler.begin_sampling(SamplerOptions(watch=True))
    await wait_until(lambda: sampler.state.has_fix)
    assert provider.active_watches == 1

    sampler.stop()
    await asyncio.sleep(0)

    assert provider.active_watches == 0


@pytest.mark.asyncio
async def test_scripted_one_shot_serves_cached_fix():
    provider = ScriptedGeolocationProvider([Position(latitude=18.52, longitude=73.85)], interval=0.01)
    sampler = LocationSampler(provider)

    sampler.begin_sampling(SamplerOptions(maximum_age=60.0))
    await wait_until(lambda: sampler.state.has_fix)

    # Script is exhausted; only the cached fix can answer
    second = LocationSampler(provider)
    second.begin_sampling(SamplerOptions(maximum_age=60.0))
    await wait_until(lambda: not second.state.loading)

    assert second.state.latitude == 18.52
    assert second.state.error is None
