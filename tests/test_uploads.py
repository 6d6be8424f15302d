"""Tests for upload windows: listing, preview, scoped delete, and reset."""

from datetime import datetime

import pytest

from conftest import CONTENT_CSV, OVERVIEW_CSV, t
from social_analytics.ingest import ingest_csv
from social_analytics.models import AnalysisRecord, ContentRow, OverviewRow, Upload
from social_analytics.uploads import (
    MAX_PREVIEW_LIMIT,
    UploadNotFoundError,
    UploadWindow,
    content_row_to_dict,
    delete_upload,
    get_owned_upload,
    list_uploads,
    overview_row_to_dict,
    preview_upload,
    reset_user_data,
    upload_to_dict,
    upload_window,
)


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------


class TestUploadWindow:
    def test_half_open_bounds(self):
        window = UploadWindow(start=t(10), end=t(20))
        assert window.contains(t(10))
        assert window.contains(t(19.999))
        assert not window.contains(t(20))
        assert not window.contains(t(9))

    def test_unbounded_end(self):
        window = UploadWindow(start=t(10))
        assert window.contains(t(10_000))
        assert not window.contains(t(5))

    def test_window_ends_at_next_upload(self, windowed_uploads, test_session):
        window = upload_window(test_session, windowed_uploads["u1"])
        assert window == UploadWindow(start=t(10), end=t(20))

    def test_latest_upload_window_is_open(self, windowed_uploads, test_session):
        window = upload_window(test_session, windowed_uploads["u2"])
        assert window == UploadWindow(start=t(20), end=None)

    def test_other_owner_uploads_do_not_close_window(self, windowed_uploads, test_session):
        test_session.add(
            Upload(owner_id=2, file_name="x.csv", kind="overview", rows_imported=0, uploaded_at=t(15))
        )
        test_session.commit()
        window = upload_window(test_session, windowed_uploads["u1"])
        assert window.end == t(20)


# ---------------------------------------------------------------------------
# Ownership and listing
# ---------------------------------------------------------------------------


class TestListing:
    def test_newest_first(self, windowed_uploads, test_session):
        uploads = list_uploads(test_session, 1)
        assert [u.file_name for u in uploads] == ["second.csv", "first.csv"]

    def test_other_users_see_nothing(self, windowed_uploads, test_session):
        assert list_uploads(test_session, 2) == []

    def test_get_owned_upload(self, windowed_uploads, test_session):
        u1 = windowed_uploads["u1"]
        assert get_owned_upload(test_session, 1, u1.id) is u1

    def test_foreign_and_unknown_ids_look_the_same(self, windowed_uploads, test_session):
        with pytest.raises(UploadNotFoundError):
            get_owned_upload(test_session, 2, windowed_uploads["u1"].id)
        with pytest.raises(UploadNotFoundError):
            get_owned_upload(test_session, 1, 9999)


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------


class TestPreview:
    def test_overview_rows_in_window(self, windowed_uploads, test_session):
        rows = preview_upload(test_session, 1, windowed_uploads["u1"].id, kind="overview")
        assert [r.impressions for r in rows] == [100]

    def test_content_rows_in_window(self, windowed_uploads, test_session):
        rows = preview_upload(test_session, 1, windowed_uploads["u1"].id, kind="content")
        assert [r.post_id for r in rows] == [555]

    def test_latest_upload_window(self, windowed_uploads, test_session):
        rows = preview_upload(test_session, 1, windowed_uploads["u2"].id, kind="overview")
        assert [r.impressions for r in rows] == [200]
        assert preview_upload(test_session, 1, windowed_uploads["u2"].id, kind="content") == []

    def test_not_owner(self, windowed_uploads, test_session):
        with pytest.raises(UploadNotFoundError):
            preview_upload(test_session, 2, windowed_uploads["u1"].id)

    def test_limit_and_order(self, windowed_uploads, test_session):
        for i in range(5):
            test_session.add(ContentRow(owner_id=1, post_id=900 + i, created_at=t(30 + i)))
        test_session.commit()
        rows = preview_upload(test_session, 1, windowed_uploads["u2"].id, limit=3)
        assert [r.post_id for r in rows] == [900, 901, 902]

    def test_limit_clamped(self, windowed_uploads, test_session):
        test_session.add_all(
            [ContentRow(owner_id=1, post_id=i, created_at=t(30)) for i in range(MAX_PREVIEW_LIMIT + 5)]
        )
        test_session.commit()
        rows = preview_upload(test_session, 1, windowed_uploads["u2"].id, limit=10_000)
        assert len(rows) == MAX_PREVIEW_LIMIT

    def test_ingested_files_preview_separately(self, test_session, write_csv):
        first = ingest_csv(test_session, write_csv("a.csv", OVERVIEW_CSV), "a.csv", owner_id=1, now=t(0))
        second = ingest_csv(test_session, write_csv("b.csv", OVERVIEW_CSV), "b.csv", owner_id=1, now=t(1))

        assert len(preview_upload(test_session, 1, first.upload_id, kind="overview")) == 3
        assert len(preview_upload(test_session, 1, second.upload_id, kind="overview")) == 3
        assert preview_upload(test_session, 1, first.upload_id, kind="content") == []


# ---------------------------------------------------------------------------
# Scoped delete
# ---------------------------------------------------------------------------


class TestDeleteUpload:
    def test_removes_only_window_rows(self, windowed_uploads, test_session):
        stats = delete_upload(test_session, 1, windowed_uploads["u1"].id)

        assert stats.as_dict() == {"overview_rows": 1, "content_rows": 1, "analyses": 0, "uploads": 1}
        assert stats.window == UploadWindow(start=t(10), end=t(20))
        remaining = {r.impressions for r in test_session.query(OverviewRow).all()}
        assert remaining == {200, 300}
        assert test_session.query(ContentRow).count() == 0
        assert [u.file_name for u in test_session.query(Upload).all()] == ["second.csv"]

    def test_latest_upload_takes_everything_after_it(self, windowed_uploads, test_session):
        test_session.add(OverviewRow(owner_id=1, date=datetime(2026, 1, 3), impressions=400, created_at=t(500)))
        test_session.commit()

        stats = delete_upload(test_session, 1, windowed_uploads["u2"].id)

        assert stats.overview_rows == 2
        remaining = {r.impressions for r in test_session.query(OverviewRow).all()}
        assert remaining == {100, 300}

    def test_analyses_in_window_removed(self, windowed_uploads, test_session):
        test_session.add_all(
            [
                AnalysisRecord(owner_id=1, post_id=555, model_name="m", created_at=t(13)),
                AnalysisRecord(owner_id=1, post_id=555, model_name="m", created_at=t(25)),
                AnalysisRecord(owner_id=2, post_id=555, model_name="m", created_at=t(13)),
            ]
        )
        test_session.commit()

        stats = delete_upload(test_session, 1, windowed_uploads["u1"].id)

        assert stats.analyses == 1
        left = sorted((a.owner_id, a.created_at) for a in test_session.query(AnalysisRecord).all())
        assert left == [(1, t(25)), (2, t(13))]

    def test_not_owner_deletes_nothing(self, windowed_uploads, test_session):
        with pytest.raises(UploadNotFoundError):
            delete_upload(test_session, 2, windowed_uploads["u1"].id)
        assert test_session.query(OverviewRow).count() == 3
        assert test_session.query(Upload).count() == 2

    def test_unknown_upload(self, windowed_uploads, test_session):
        with pytest.raises(UploadNotFoundError):
            delete_upload(test_session, 1, 9999)

    def test_later_upload_keeps_its_rows(self, windowed_uploads, test_session):
        # u2 window starts at its own timestamp, so u1 rows never fall into it
        delete_upload(test_session, 1, windowed_uploads["u1"].id)
        rows = preview_upload(test_session, 1, windowed_uploads["u2"].id, kind="overview")
        assert [r.impressions for r in rows] == [200]

    def test_deleting_ingested_file(self, test_session, write_csv):
        first = ingest_csv(test_session, write_csv("a.csv", OVERVIEW_CSV), "a.csv", owner_id=1, now=t(0))
        ingest_csv(test_session, write_csv("b.csv", CONTENT_CSV), "b.csv", owner_id=1, now=t(1))

        stats = delete_upload(test_session, 1, first.upload_id)

        assert stats.overview_rows == 3
        assert stats.content_rows == 0
        assert test_session.query(ContentRow).count() == 2


# ---------------------------------------------------------------------------
# Reset
# ---------------------------------------------------------------------------


class TestResetUserData:
    def test_removes_everything_of_owner(self, windowed_uploads, test_session):
        test_session.add(AnalysisRecord(owner_id=1, post_id=555, model_name="m", created_at=t(13)))
        test_session.commit()

        stats = reset_user_data(test_session, 1)

        assert stats.as_dict() == {"overview_rows": 2, "content_rows": 1, "analyses": 1, "uploads": 2}
        assert stats.total_rows == 4
        assert [r.owner_id for r in test_session.query(OverviewRow).all()] == [2]
        assert test_session.query(Upload).count() == 0

    def test_idempotent(self, windowed_uploads, test_session):
        reset_user_data(test_session, 1)
        stats = reset_user_data(test_session, 1)
        assert stats.total_rows == 0
        assert stats.uploads == 0

    def test_user_without_data(self, test_session):
        assert reset_user_data(test_session, 42).total_rows == 0


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


class TestSerialization:
    def test_upload_to_dict(self, windowed_uploads):
        data = upload_to_dict(windowed_uploads["u1"])
        assert data == {
            "upload_id": windowed_uploads["u1"].id,
            "csv_type": "overview",
            "file_name": "first.csv",
            "rows_imported": 1,
            "uploaded_at": t(10).isoformat(),
        }

    def test_content_post_id_is_string(self, windowed_uploads):
        data = content_row_to_dict(windowed_uploads["post"])
        assert data["post_id"] == "555"
        assert data["published_at"] is None
        assert data["likes"] == 0

    def test_overview_missing_metrics_are_zero(self, windowed_uploads):
        data = overview_row_to_dict(windowed_uploads["row_a"])
        assert data["impressions"] == 100
        assert data["saves"] == 0
        assert data["create_post"] == 0
        assert data["date"] == "2026-01-01T00:00:00"

    def test_overview_create_post_serialized(self, test_session):
        row = OverviewRow(owner_id=1, date=datetime(2026, 1, 1), create_post=4, created_at=t(0))
        test_session.add(row)
        test_session.commit()
        assert overview_row_to_dict(row)["create_post"] == 4
