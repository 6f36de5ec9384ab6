from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from time import sleep

from spendsync import config
from spendsync.domain.models import ExtractedTransaction
from spendsync.parsing.extractor import extract
from spendsync.utils import profiler
from spendsync.utils.clock import MonotonicClock
from scripts import generate_messages


def test_get_settings_defaults():
    settings = config.get_settings()
    assert settings.db_port == 5432
    assert settings.store_backend in ("memory", "postgres")
    assert settings.sync_interval_seconds > 0
    assert settings.local_dsn.startswith("postgresql://")


def test_settings_accept_field_names():
    settings = config.Settings(db_name="other", parse_message_dates=False, _env_file=None)
    assert settings.db_name == "other"
    assert settings.parse_message_dates is False
    assert settings.local_dsn.endswith("/other")


def test_profile_block_measures_time():
    with profiler.profile_block("sleep") as stats:
        sleep(0.05)
    assert stats.duration_seconds >= 0.05
    # RSS may be None where psutil cannot read the process
    if stats.peak_rss_bytes is not None:
        assert stats.peak_rss_bytes > 0
    assert stats.label == "sleep"
    assert stats.end_ts >= stats.start_ts


def test_monotonic_clock_never_repeats():
    frozen = datetime(2024, 11, 1, tzinfo=timezone.utc)
    clock = MonotonicClock(source=lambda: frozen)

    stamps = [clock.now() for _ in range(3)]

    assert stamps[0] == frozen
    assert stamps[1] == frozen + timedelta(microseconds=1)
    assert stamps[0] < stamps[1] < stamps[2]


def test_generated_corpus_is_deterministic():
    first = generate_messages._generate_messages(50, seed=7, end=date(2024, 11, 30))
    second = generate_messages._generate_messages(50, seed=7, end=date(2024, 11, 30))
    assert first == second
    assert len(first) == 50


def test_generated_corpus_mixes_payments_and_noise():
    messages = generate_messages._generate_messages(200, seed=1, end=date(2024, 11, 30))
    results = [extract(message) for message in messages]
    accepted = [r for r in results if isinstance(r, ExtractedTransaction)]
    assert 0 < len(accepted) < len(messages)


def test_write_corpus(tmp_path: Path):
    path = tmp_path / "corpus" / "messages.txt"
    messages = generate_messages._generate_messages(5, seed=123, end=date(2024, 11, 30))

    generate_messages._write_corpus(path, messages)

    assert path.read_text(encoding="utf-8").splitlines() == messages
