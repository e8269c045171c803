import logging

from reminder_worker.scheduler_config import (
    DEFAULT_REMINDER_OFFSETS, ReminderSettings, load_reminder_settings, min_offset_gap, parse_offsets,
)


def test_defaults_when_env_empty():
    assert load_reminder_settings({}) == ReminderSettings()


def test_offsets_filtered_sorted_and_deduplicated():
    assert parse_offsets("15, 60, -5, 0, abc, 60") == (60, 15)


def test_offsets_fall_back_when_nothing_usable():
    assert parse_offsets("0,-1,x") == DEFAULT_REMINDER_OFFSETS
    assert parse_offsets("") == DEFAULT_REMINDER_OFFSETS


def test_bad_numbers_use_defaults():
    settings = load_reminder_settings({
        "TICK_INTERVAL_SECONDS": "soon",
        "BURST_SIZE": "-3",
        "BATCH_PACING_SECONDS": "0",
        "DISPATCH_TIMEOUT_SECONDS": "0",
        "TIMEZONE": "Mars/Olympus",
    })
    assert settings.tick_interval_seconds == 60
    assert settings.burst_size == 10
    assert settings.batch_pacing_seconds == 0.0
    assert settings.dispatch_timeout_seconds == 10.0
    assert settings.timezone == "Asia/Tokyo"


def test_values_read_from_env():
    settings = load_reminder_settings({
        "TICK_INTERVAL_SECONDS": "30",
        "REMINDER_OFFSETS": "120,30",
        "BURST_SIZE": "3",
        "TIMEZONE": "UTC",
    })
    assert settings.tick_interval_seconds == 30
    assert settings.offsets == (120, 30)
    assert settings.burst_size == 3
    assert settings.tz.zone == "UTC"


def test_warns_when_tick_longer_than_offset_gap(caplog):
    with caplog.at_level(logging.WARNING):
        load_reminder_settings({"TICK_INTERVAL_SECONDS": "600", "REMINDER_OFFSETS": "10,5"})
    assert "smallest reminder gap" in caplog.text


def test_min_offset_gap():
    assert min_offset_gap((60, 15)) == 15
    assert min_offset_gap(DEFAULT_REMINDER_OFFSETS) == 1
