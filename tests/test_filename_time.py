from datetime import datetime

import pytz

from street_metrics.filename_time import build_image_filename, decode_capture_time, timestamp_matches

NEW_YORK = pytz.timezone("America/New_York")


def test_decode_capture_time():
    capture = decode_capture_time("2026-01-29-22-15.jpg", NEW_YORK)
    assert capture is not None
    assert capture.iso == "2026-01-29T22:15-05:00"
    assert capture.day_of_week == "Thursday"


def test_decode_uses_daylight_saving_offset():
    capture = decode_capture_time("2026-07-04-09-30.jpg", NEW_YORK)
    assert capture.iso == "2026-07-04T09:30-04:00"
    assert capture.day_of_week == "Saturday"


def test_decode_failure_is_visible():
    assert decode_capture_time("snapshot.jpg", NEW_YORK) is None
    assert decode_capture_time("2026-13-01-10-00.jpg", NEW_YORK) is None
    assert decode_capture_time("2026-01-29-22-15.png", NEW_YORK) is None


def test_build_image_filename():
    dt_local = NEW_YORK.localize(datetime(2026, 1, 29, 22, 15, 42))
    assert build_image_filename(dt_local) == "2026-01-29-22-15.jpg"


def test_timestamp_matches():
    capture = decode_capture_time("2026-01-29-22-15.jpg", NEW_YORK)
    assert timestamp_matches("2026-01-29T22:15:00", capture, NEW_YORK)
    assert timestamp_matches("2026-01-30T03:15:00Z", capture, NEW_YORK)
    assert not timestamp_matches("2026-01-29T10:15:00", capture, NEW_YORK)
    assert not timestamp_matches("yesterday", capture, NEW_YORK)
