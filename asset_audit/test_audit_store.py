"""
asset_audit/test_audit_store.py

Tests for audit log storage, review persistence, listing, user permission
storage and the evidence store.

Tests verify:
1. Submissions are stored pending with sanitized changes
2. Review writes only land while the stored row is still pending
3. Two concurrent reviewers: exactly one wins, the other gets a conflict
4. Listing filters, ordering and pagination
5. Permission sets are persisted normalized
"""

import threading
from datetime import date, datetime, timedelta, timezone

import pytest

from asset_audit import audit_store, user_store
from asset_audit.catalog import ALL_ACTIONS, Action, Effect
from asset_audit.db import get_db, init_db
from asset_audit.errors import InvalidTransitionError, NotFoundError, ValidationError
from asset_audit.evidence import LocalEvidenceStore
from asset_audit.models import ReviewStatus
from asset_audit.proposal import EvidenceBundle, EvidenceFile, build_proposal
from asset_audit.review import approve


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "audit.db")
    conn = get_db(path)
    init_db(conn)
    conn.execute("INSERT INTO assets (id, name) VALUES (1, 'Desk'), (2, 'Chair')")
    conn.execute("INSERT INTO assets (id, name, status) VALUES (3, 'Scrapped printer', 0)")
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def conn(db_path):
    c = get_db(db_path)
    yield c
    c.close()


def submit(conn, asset_id=1, remark="", changes=None, created_by=7):
    payload = build_proposal(
        changes if changes is not None else {"description": "new text"},
        asset_id=asset_id,
        auditor_remark=remark,
    )
    return audit_store.insert_audit_log(conn, payload, created_by=created_by)


def set_created_at(conn, audit_id, when):
    conn.execute("UPDATE asset_audit_logs SET created_at = ? WHERE id = ?", (when.isoformat(), audit_id))
    conn.commit()


# ============================================================================
# Submission
# ============================================================================

class TestInsert:
    def test_stored_pending(self, conn):
        log = submit(conn, changes={"name": "", "description": "new text", "year": "2019"})
        assert log.review_status is ReviewStatus.pending
        assert log.proposed_changes == {"description": "new text", "year": 2019}
        assert log.created_by == 7
        assert log.rejected_remark is None
        assert log.audit_images == []

    def test_image_references(self, conn):
        payload = build_proposal({}, asset_id=2)
        log = audit_store.insert_audit_log(
            conn, payload, created_by=7, asset_image="a.jpg", audit_images=["1.jpg", "2.jpg"],
        )
        assert log.asset_image == "a.jpg"
        assert log.audit_images == ["1.jpg", "2.jpg"]

    def test_unknown_asset(self, conn):
        with pytest.raises(NotFoundError):
            submit(conn, asset_id=99)

    def test_inactive_asset(self, conn):
        with pytest.raises(NotFoundError):
            submit(conn, asset_id=3)

    def test_non_numeric_asset_id(self, conn):
        with pytest.raises(ValidationError):
            submit(conn, asset_id="desk-1")

    def test_get_missing(self, conn):
        with pytest.raises(NotFoundError, match="Audit log not found"):
            audit_store.get_audit_log(conn, 12345)


# ============================================================================
# Review Persistence
# ============================================================================

class TestReview:
    def test_approve_persists(self, conn):
        log = submit(conn)
        audit_store.review_audit_log(conn, log.id, {"reviewStatus": "approved"}, reviewer_id=2)
        stored = audit_store.get_audit_log(conn, log.id)
        assert stored.review_status is ReviewStatus.approved
        assert stored.updated_by == 2

    def test_reject_persists_remark(self, conn):
        log = submit(conn)
        audit_store.review_audit_log(
            conn, log.id, {"reviewStatus": "rejected", "rejectedRemark": "Wrong serial"}, reviewer_id=2,
        )
        stored = audit_store.get_audit_log(conn, log.id)
        assert stored.review_status is ReviewStatus.rejected
        assert stored.rejected_remark == "Wrong serial"

    def test_second_review_is_a_conflict(self, conn):
        log = submit(conn)
        audit_store.review_audit_log(conn, log.id, {"reviewStatus": "approved"}, reviewer_id=2)
        with pytest.raises(InvalidTransitionError):
            audit_store.review_audit_log(
                conn, log.id, {"reviewStatus": "rejected", "rejectedRemark": "late"}, reviewer_id=3,
            )
        assert audit_store.get_audit_log(conn, log.id).review_status is ReviewStatus.approved

    def test_stale_write_is_refused(self, conn):
        """A transition computed from a stale read must not overwrite the stored outcome."""
        log = submit(conn)
        stale = approve(log, reviewer_id=4)
        audit_store.review_audit_log(
            conn, log.id, {"reviewStatus": "rejected", "rejectedRemark": "first"}, reviewer_id=2,
        )
        with pytest.raises(InvalidTransitionError):
            audit_store.save_review(conn, stale)
        stored = audit_store.get_audit_log(conn, log.id)
        assert stored.review_status is ReviewStatus.rejected
        assert stored.rejected_remark == "first"

    def test_failed_validation_leaves_row_pending(self, conn):
        log = submit(conn)
        with pytest.raises(ValidationError):
            audit_store.review_audit_log(conn, log.id, {"reviewStatus": "rejected", "rejectedRemark": " "}, reviewer_id=2)
        assert audit_store.get_audit_log(conn, log.id).review_status is ReviewStatus.pending

    def test_missing_log(self, conn):
        with pytest.raises(NotFoundError):
            audit_store.review_audit_log(conn, 999, {"reviewStatus": "approved"}, reviewer_id=2)

    def test_concurrent_reviewers(self, db_path):
        conn = get_db(db_path)
        log = submit(conn)
        conn.close()

        barrier = threading.Barrier(2)
        outcomes = {}

        def review(name, request):
            c = get_db(db_path)
            try:
                barrier.wait()
                audit_store.review_audit_log(c, log.id, request, reviewer_id=1)
                outcomes[name] = "ok"
            except InvalidTransitionError:
                outcomes[name] = "conflict"
            finally:
                c.close()

        threads = [
            threading.Thread(target=review, args=("approve", {"reviewStatus": "approved"})),
            threading.Thread(target=review, args=("reject", {"reviewStatus": "rejected", "rejectedRemark": "bad"})),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes.values()) == ["conflict", "ok"]
        winner = "approve" if outcomes["approve"] == "ok" else "reject"

        conn = get_db(db_path)
        stored = audit_store.get_audit_log(conn, log.id)
        conn.close()
        if winner == "approve":
            assert stored.review_status is ReviewStatus.approved
            assert stored.rejected_remark is None
        else:
            assert stored.review_status is ReviewStatus.rejected
            assert stored.rejected_remark == "bad"


# ============================================================================
# Listing
# ============================================================================

class TestListing:
    @pytest.fixture
    def seeded(self, conn):
        base = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
        logs = []
        for i, (asset_id, remark) in enumerate([
            (1, "Label missing"),
            (1, "moved to floor 2"),
            (2, "Scratched top"),
            (2, ""),
            (1, "LABEL replaced"),
        ]):
            log = submit(conn, asset_id=asset_id, remark=remark)
            set_created_at(conn, log.id, base + timedelta(days=i))
            logs.append(log)
        audit_store.review_audit_log(conn, logs[0].id, {"reviewStatus": "approved"}, reviewer_id=2)
        audit_store.review_audit_log(
            conn, logs[2].id, {"reviewStatus": "rejected", "rejectedRemark": "blurry"}, reviewer_id=2,
        )
        return logs

    def test_newest_first(self, conn, seeded):
        page = audit_store.list_audit_logs(conn, audit_store.AuditLogFilters())
        assert [log.id for log in page.items] == [log.id for log in reversed(seeded)]
        assert page.total_entries == 5
        assert page.has_more is False

    def test_status_filter(self, conn, seeded):
        page = audit_store.list_audit_logs(conn, audit_store.AuditLogFilters(status="pending"))
        assert {log.id for log in page.items} == {seeded[1].id, seeded[3].id, seeded[4].id}

    def test_unknown_status_filter(self, conn, seeded):
        with pytest.raises(ValidationError):
            audit_store.list_audit_logs(conn, audit_store.AuditLogFilters(status="archived"))

    def test_asset_filter(self, conn, seeded):
        page = audit_store.list_audit_logs(conn, audit_store.AuditLogFilters(asset_id=2))
        assert [log.id for log in page.items] == [seeded[3].id, seeded[2].id]

    def test_date_range_is_inclusive(self, conn, seeded):
        filters = audit_store.AuditLogFilters(start_date=date(2024, 5, 2), end_date=date(2024, 5, 3))
        page = audit_store.list_audit_logs(conn, filters)
        assert {log.id for log in page.items} == {seeded[1].id, seeded[2].id}

    def test_search_is_case_insensitive(self, conn, seeded):
        page = audit_store.list_audit_logs(conn, audit_store.AuditLogFilters(search="label"))
        assert {log.id for log in page.items} == {seeded[0].id, seeded[4].id}

    def test_search_wildcards_are_literal(self, conn, seeded):
        fifty = submit(conn, remark="Discounted 50% on resale")
        submit(conn, remark="Room 50 B")
        submit(conn, remark="floor_2 shelf")
        page = audit_store.list_audit_logs(conn, audit_store.AuditLogFilters(search="50%"))
        assert [log.id for log in page.items] == [fifty.id]
        page = audit_store.list_audit_logs(conn, audit_store.AuditLogFilters(search="r_2"))
        assert [log.auditor_remark for log in page.items] == ["floor_2 shelf"]

    def test_pagination(self, conn, seeded):
        first = audit_store.list_audit_logs(conn, audit_store.AuditLogFilters(page=1, limit=2))
        last = audit_store.list_audit_logs(conn, audit_store.AuditLogFilters(page=3, limit=2))
        assert first.total_pages == 3
        assert first.has_more is True
        assert len(first.items) == 2
        assert [log.id for log in last.items] == [seeded[0].id]
        assert last.has_more is False

    @pytest.mark.parametrize("page,limit", [(0, 10), (1, 0), (1, 101)])
    def test_bad_pagination(self, conn, page, limit):
        with pytest.raises(ValidationError):
            audit_store.list_audit_logs(conn, audit_store.AuditLogFilters(page=page, limit=limit))

    def test_counts(self, conn, seeded):
        assert audit_store.count_by_status(conn) == {"pending": 3, "approved": 1, "rejected": 1}
        assert audit_store.count_by_status(conn, asset_id=2) == {"pending": 1, "approved": 0, "rejected": 1}

    def test_counts_on_empty_table(self, conn):
        assert audit_store.count_by_status(conn) == {"pending": 0, "approved": 0, "rejected": 0}


# ============================================================================
# User Permissions
# ============================================================================

class TestUserStore:
    def test_create_user_gets_role_defaults(self, conn):
        user = user_store.create_user(conn, "Ann", "ann@example.com", role="auditor")
        pset = user_store.get_permission_set(conn, user.id)
        assert pset[Action.AUDIT_REPORT_VIEW] is Effect.ALLOW
        assert pset[Action.AUDIT_REPORT_EDIT] is Effect.DENY
        assert len(user.permissions) == len(ALL_ACTIONS)

    def test_save_normalizes(self, conn):
        user = user_store.create_user(conn, "Bo", "bo@example.com")
        saved = user_store.save_permissions(
            conn, user.id, [{"action": "generateQrCode", "effect": "Allow"}, {"action": "old:thing", "effect": "Allow"}],
            updated_by=1,
        )
        assert list(saved) == list(ALL_ACTIONS)
        assert user_store.get_permission_set(conn, user.id) == saved
        stored = user_store.get_user(conn, user.id).permissions
        assert {"action": "old:thing", "effect": "Allow"} not in stored

    def test_unknown_user(self, conn):
        with pytest.raises(NotFoundError, match="User not found"):
            user_store.save_permissions(conn, 404, [])
        with pytest.raises(NotFoundError):
            user_store.get_user(conn, 404)

    @pytest.mark.parametrize("raw,expected", [
        (None, []),
        ("", []),
        ("not json", []),
        ('{"action": "allAccess"}', []),
        ('[{"action": "allAccess", "effect": "Allow"}]', [{"action": "allAccess", "effect": "Allow"}]),
    ])
    def test_load_permissions(self, raw, expected):
        assert user_store.load_permissions(raw) == expected


# ============================================================================
# Evidence
# ============================================================================

class TestEvidenceStore:
    def test_save_image(self, tmp_path):
        store = LocalEvidenceStore(tmp_path / "evidence")
        ref = store.save(EvidenceFile("Photo.JPG", b"\xff\xd8\xff", "image/jpeg"))
        assert ref.endswith(".jpg")
        assert store.path_for(ref).read_bytes() == b"\xff\xd8\xff"

    def test_references_are_unique(self, tmp_path):
        store = LocalEvidenceStore(tmp_path)
        image = EvidenceFile("a.png", b"png", "image/png")
        assert store.save(image) != store.save(image)

    @pytest.mark.parametrize("evidence", [
        EvidenceFile("notes.txt", b"hello", "text/plain"),
        EvidenceFile("empty.png", b"", "image/png"),
    ])
    def test_rejects_non_images_and_empty_files(self, tmp_path, evidence):
        with pytest.raises(ValidationError):
            LocalEvidenceStore(tmp_path).save(evidence)

    def test_path_for_stays_inside_root(self, tmp_path):
        store = LocalEvidenceStore(tmp_path)
        assert store.path_for("../../etc/passwd") == tmp_path / "passwd"

    def test_bundle_is_validated_before_any_write(self, tmp_path):
        store = LocalEvidenceStore(tmp_path / "evidence")
        bundle = EvidenceBundle(
            asset_image=EvidenceFile("asset.jpg", b"\xff\xd8\xff", "image/jpeg"),
            audit_images=[EvidenceFile("report.pdf", b"%PDF", "application/pdf")],
        )
        with pytest.raises(ValidationError):
            store.save_bundle(bundle)
        assert not (tmp_path / "evidence").exists() or list((tmp_path / "evidence").iterdir()) == []

    def test_save_bundle_and_discard(self, tmp_path):
        store = LocalEvidenceStore(tmp_path)
        image = EvidenceFile("a.png", b"png", "image/png")
        asset_ref, audit_refs = store.save_bundle(EvidenceBundle(asset_image=image, audit_images=[image, image]))
        assert len(audit_refs) == 2
        assert len(list(tmp_path.iterdir())) == 3

        store.discard([asset_ref, *audit_refs, None, "already-gone.png"])
        assert list(tmp_path.iterdir()) == []

    def test_bundle_without_asset_image(self, tmp_path):
        store = LocalEvidenceStore(tmp_path)
        asset_ref, audit_refs = store.save_bundle(
            EvidenceBundle(audit_images=[EvidenceFile("a.png", b"png", "image/png")])
        )
        assert asset_ref is None
        assert len(audit_refs) == 1
