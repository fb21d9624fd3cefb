import sys
from datetime import date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from lawn_lapse.distribution import analyze_distribution  # noqa: E402
from lawn_lapse.frames import FrameStore, frame_key, parse_frame_filename  # noqa: E402
from lawn_lapse.models import Frame  # noqa: E402


def _frame(day: str, time_of_day: str) -> Frame:
    return Frame(
        date=date.fromisoformat(day),
        time_of_day=time_of_day,
        path=Path(f"{day}_{time_of_day}.jpg"),
        mtime=0.0,
    )


def test_frame_key_uses_local_date():
    slot = datetime(2025, 6, 10, 21, 30, tzinfo=ZoneInfo("America/Los_Angeles"))

    assert frame_key(slot) == (date(2025, 6, 10), "2130")


def test_parse_frame_filename_rejects_foreign_files():
    assert parse_frame_filename("2025-06-10_1200.jpg") == (date(2025, 6, 10), "1200")
    assert parse_frame_filename("2025-06-10_1200.png") is None
    assert parse_frame_filename("filelist.txt") is None
    assert parse_frame_filename("2025-13-40_1200.jpg") is None


def test_frame_store_writes_atomically_and_lists_sorted(tmp_path):
    store = FrameStore(tmp_path / "snapshots")
    store.write(date(2025, 6, 11), "0600", b"b")
    store.write(date(2025, 6, 10), "1800", b"a")
    store.write(date(2025, 6, 10), "0600", b"c")
    (tmp_path / "snapshots" / "notes.txt").write_text("ignored")

    frames = store.list_all()

    assert [(frame.date_str, frame.time_of_day) for frame in frames] == [
        ("2025-06-10", "0600"),
        ("2025-06-10", "1800"),
        ("2025-06-11", "0600"),
    ]
    assert not list((tmp_path / "snapshots").glob(".tmp_*"))
    assert store.latest().date_str == "2025-06-11"


def test_empty_frame_store(tmp_path):
    store = FrameStore(tmp_path / "missing")

    assert store.list_all() == []
    assert store.latest() is None


def test_three_frames_make_a_daily_video():
    frames = [_frame("2025-06-10", "1800"), _frame("2025-06-10", "0600"), _frame("2025-06-10", "1200")]

    result = analyze_distribution(frames)

    assert len(result.daily_videos) == 1
    assert [frame.time_of_day for frame in result.daily_videos[0].frames] == ["0600", "1200", "1800"]
    assert result.time_groups == ()


def test_two_frames_are_pooled_into_time_groups():
    frames = [
        _frame("2025-06-11", "1200"),
        _frame("2025-06-10", "1200"),
        _frame("2025-06-10", "0600"),
        _frame("2025-06-12", "0600"),
        _frame("2025-06-12", "0700"),
        _frame("2025-06-12", "0800"),
    ]

    result = analyze_distribution(frames)

    assert [plan.date for plan in result.daily_videos] == [date(2025, 6, 12)]
    assert [group.time_of_day for group in result.time_groups] == ["0600", "1200"]
    noon = result.time_groups[1]
    assert [frame.date_str for frame in noon.frames] == ["2025-06-10", "2025-06-11"]
    assert noon.first_date == date(2025, 6, 10)
    assert noon.last_date == date(2025, 6, 11)


def test_distribution_reads_from_frame_store(tmp_path):
    store = FrameStore(tmp_path)
    for day in (10, 11, 12):
        store.write(date(2025, 6, day), "1200", b"x")

    result = analyze_distribution(store)

    assert result.daily_videos == ()
    assert len(result.time_groups) == 1
    assert len(result.time_groups[0].frames) == 3
