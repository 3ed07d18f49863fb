"""Integration tests for the expired cookie cleanup job."""
from datetime import datetime, timedelta, timezone

import pytest

from cjms_core.errors import NotFoundError
from cjms_core.jobs.cleanup import archive_expired_aics


NOW = datetime(2022, 3, 16, 12, 0, 0, tzinfo=timezone.utc)


def test_archives_only_expired(aics, metrics):
    expired = [aics.create(f"CJ{i}", f"F{i}", now=NOW - timedelta(days=40 + i)) for i in range(3)]
    live = aics.create("CJL", "FL", now=NOW)

    archived = archive_expired_aics(aics, metrics, now=NOW)

    assert archived == 3
    for aic in expired:
        with pytest.raises(NotFoundError):
            aics.fetch_one_by_id(aic.id)
        assert aics.fetch_one_by_id_from_archive(aic.id) == aic
    assert aics.fetch_one_by_id(live.id) == live
    assert metrics.gauge_value("expired") == 3
    assert metrics.count("aic_archived") == 3


def test_failed_move_is_counted_and_skipped(aics, metrics):
    already = aics.create("CJ1", "F1", now=NOW - timedelta(days=40))
    aics.create_archive_from_aic(already)
    other = aics.create("CJ2", "F2", now=NOW - timedelta(days=41))

    archived = archive_expired_aics(aics, metrics, now=NOW)

    assert archived == 1
    assert metrics.count("aic_archive_failed") == 1
    assert aics.fetch_one_by_id(already.id) == already
    assert aics.fetch_one_by_id_from_archive(other.id) == other


def test_nothing_expired(aics, metrics):
    aics.create("CJ1", "F1", now=NOW)

    assert archive_expired_aics(aics, metrics, now=NOW) == 0
    assert metrics.gauge_value("expired") == 0
