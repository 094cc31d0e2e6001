"""Unit tests for DirectorySyncJob."""

import pytest

from models import SyncLogEntry, SyncRun, User
from services.sync_job import CancellationToken, DirectorySyncJob, JobState, format_duration
from tests.fixtures.mocks import (
    MockDirectoryClient,
    RecordingUserRepository,
    SAMPLE_ENTRIES,
    make_entry,
)


def _job(directory_config, client, repository, log_service, run_service, **kwargs):
    return DirectorySyncJob(
        directory_config, client, repository, log_service, run_service, **kwargs
    )


def _run_row(session_factory, run_id) -> SyncRun:
    db = session_factory()
    try:
        return db.query(SyncRun).filter(SyncRun.id == run_id).one()
    finally:
        db.close()


def _logs(session_factory, run_id) -> list[SyncLogEntry]:
    db = session_factory()
    try:
        return (
            db.query(SyncLogEntry)
            .filter(SyncLogEntry.sync_run_id == run_id)
            .order_by(SyncLogEntry.id)
            .all()
        )
    finally:
        db.close()


def _users(session_factory) -> dict[str, User]:
    db = session_factory()
    try:
        return {u.username: u for u in db.query(User).all()}
    finally:
        db.close()


class TestLifecycle:
    def test_new_job_is_pending_with_run_row(
        self, directory_config, mock_directory_client, user_repository,
        log_service, run_service, session_factory,
    ):
        job = _job(directory_config, mock_directory_client, user_repository, log_service, run_service)

        assert job.state == JobState.PENDING
        row = _run_row(session_factory, job.sync_id)
        assert row.status == "pending"
        assert row.started_at is not None
        assert row.ended_at is None

    def test_successful_run_creates_users_and_completes(
        self, directory_config, mock_directory_client, user_repository,
        log_service, run_service, session_factory,
    ):
        job = _job(directory_config, mock_directory_client, user_repository, log_service, run_service)

        summary = job.run()

        assert job.state == JobState.COMPLETED
        assert summary.status == "completed"
        assert summary.users_created == 3
        assert summary.total_entries == 3
        assert summary.error_count == 0
        assert summary.ended_at >= summary.started_at
        users = _users(session_factory)
        assert set(users) == {"alice", "bob", "carol"}
        assert all(u.is_external and u.is_active for u in users.values())

    def test_second_run_changes_nothing(
        self, directory_config, mock_directory_client, user_repository,
        log_service, run_service,
    ):
        _job(directory_config, mock_directory_client, user_repository, log_service, run_service).run()

        summary = _job(
            directory_config, mock_directory_client, user_repository, log_service, run_service
        ).run()

        assert summary.status == "completed"
        assert summary.users_created == 0
        assert summary.users_updated == 0
        assert summary.users_deactivated == 0

    def test_run_twice_raises(
        self, directory_config, mock_directory_client, user_repository,
        log_service, run_service,
    ):
        job = _job(directory_config, mock_directory_client, user_repository, log_service, run_service)
        job.run()

        with pytest.raises(RuntimeError):
            job.run()

    def test_progress_after_completion(
        self, directory_config, mock_directory_client, user_repository,
        log_service, run_service,
    ):
        job = _job(directory_config, mock_directory_client, user_repository, log_service, run_service)
        job.run()

        progress = job.progress()
        assert progress.state == JobState.COMPLETED
        assert progress.percent == 100.0
        assert progress.processed_items == progress.total_items == 3
        assert progress.current_step == "Finished"


class TestUpdatesAndDeactivation:
    def test_update_and_deactivate_scenario(
        self, directory_config, user_repository, log_service, run_service,
        session_factory, db,
    ):
        """Directory {alice, carol(new)} vs local {alice(old email), bob}."""
        db.add_all([
            User(external_id="uuid-alice", username="alice", email="old@example.com",
                 display_name="Alice", is_external=True),
            User(external_id="uuid-bob", username="bob", email="bob@example.com",
                 display_name="Bob", is_external=True),
        ])
        db.commit()
        client = MockDirectoryClient(entries=[make_entry("alice"), make_entry("carol")])

        summary = _job(directory_config, client, user_repository, log_service, run_service).run()

        assert summary.users_created == 1
        assert summary.users_updated == 1
        assert summary.users_deactivated == 1
        users = _users(session_factory)
        assert users["alice"].email == "alice@example.com"
        assert users["bob"].is_active is False
        assert users["carol"].is_active is True

    def test_recycled_username_creates_new_user(
        self, directory_config, user_repository, log_service, run_service,
        session_factory, db,
    ):
        """The directory hands ``bob`` to a new person with a new external id."""
        db.add(User(external_id="uuid-old-bob", username="bob", email="bob@example.com",
                    display_name="Bob", is_external=True))
        db.commit()
        client = MockDirectoryClient(entries=[make_entry("bob", external_id="uuid-new-bob")])

        summary = _job(directory_config, client, user_repository, log_service, run_service).run()
        again = _job(directory_config, client, user_repository, log_service, run_service).run()

        assert (summary.users_created, summary.users_deactivated, summary.error_count) == (1, 1, 0)
        assert again.status == "completed"
        assert (again.users_created, again.error_count) == (0, 0)
        db.expire_all()
        bobs = {u.external_id: u.is_active for u in db.query(User).filter(User.username == "bob")}
        assert bobs == {"uuid-old-bob": False, "uuid-new-bob": True}

    def test_local_user_is_not_deactivated(
        self, directory_config, user_repository, log_service, run_service,
        session_factory, local_user,
    ):
        client = MockDirectoryClient(entries=[])

        summary = _job(directory_config, client, user_repository, log_service, run_service).run()

        assert summary.users_deactivated == 0
        assert _users(session_factory)["admin"].is_active is True


class TestPartialFailure:
    def test_failed_action_is_logged_and_others_applied(
        self, directory_config, mock_directory_client, user_repository,
        log_service, run_service, session_factory,
    ):
        repository = RecordingUserRepository(user_repository, fail_usernames={"bob"})

        summary = _job(directory_config, mock_directory_client, repository, log_service, run_service).run()

        assert summary.status == "completed"
        assert summary.users_created == 2
        assert summary.error_count == 1
        assert set(_users(session_factory)) == {"alice", "carol"}
        errors = [e for e in _logs(session_factory, summary.id) if e.level == "error"]
        assert len(errors) == 1
        assert errors[0].username == "bob"
        assert errors[0].external_id == "uuid-bob"

    def test_unexpected_error_records_stack_trace(
        self, directory_config, mock_directory_client, user_repository,
        log_service, run_service, session_factory,
    ):
        repository = RecordingUserRepository(user_repository, unexpected_usernames={"alice"})

        summary = _job(directory_config, mock_directory_client, repository, log_service, run_service).run()

        assert summary.status == "completed"
        assert summary.users_created == 2
        errors = [e for e in _logs(session_factory, summary.id) if e.level == "error"]
        assert len(errors) == 1
        assert "RuntimeError" in errors[0].stack_trace

    def test_error_count_matches_error_log_entries(
        self, directory_config, user_repository, log_service, run_service, session_factory,
    ):
        entries = [
            make_entry("alice"),
            make_entry("bob", email=None),         # planner error
            make_entry("carol"),
            make_entry("carol", email="c2@example.com"),  # duplicate warning
            make_entry("dave"),
        ]
        client = MockDirectoryClient(entries=entries)
        repository = RecordingUserRepository(user_repository, fail_usernames={"dave"})

        summary = _job(directory_config, client, repository, log_service, run_service).run()

        counts = log_service.count_by_level(summary.id)
        assert summary.error_count == counts["error"] == 2
        assert summary.warning_count == counts["warning"] == 1
        assert summary.users_created == 2


class TestFatalFailure:
    def test_fetch_failure_fails_run_without_changes(
        self, directory_config, user_repository, log_service, run_service,
        session_factory, external_user,
    ):
        client = MockDirectoryClient(
            entries=SAMPLE_ENTRIES, fail_after=1,
            failure_type="data", failure_message="size limit exceeded",
        )

        summary = _job(directory_config, client, user_repository, log_service, run_service).run()

        assert summary.status == "failed"
        assert "size limit exceeded" in summary.error_message
        assert summary.users_created == summary.users_deactivated == 0
        # nothing deactivated on a partial snapshot
        assert _users(session_factory)["alice"].is_active is True
        errors = [e for e in _logs(session_factory, summary.id) if e.level == "error"]
        assert len(errors) == 1
        assert errors[0].directory_error_code == 32
        assert errors[0].directory_error_message == "noSuchObject"
        assert summary.error_count == 1

    def test_auth_failure_fails_run(
        self, directory_config, user_repository, log_service, run_service,
    ):
        client = MockDirectoryClient(should_fail=True, failure_type="auth", failure_message="bad credentials")

        job = _job(directory_config, client, user_repository, log_service, run_service)
        summary = job.run()

        assert job.state == JobState.FAILED
        assert summary.status == "failed"
        assert summary.ended_at is not None

    def test_user_store_failure_fails_run(
        self, directory_config, mock_directory_client, user_repository,
        log_service, run_service,
    ):
        repository = RecordingUserRepository(user_repository, fail_listing=True)

        summary = _job(directory_config, mock_directory_client, repository, log_service, run_service).run()

        assert summary.status == "failed"
        assert repository.writes == []

    def test_disabled_config_fails_run(
        self, directory_config, mock_directory_client, user_repository,
        log_service, run_service,
    ):
        disabled = directory_config.model_copy(update={"enabled": False})

        summary = _job(disabled, mock_directory_client, user_repository, log_service, run_service).run()

        assert summary.status == "failed"
        assert mock_directory_client.fetch_calls == []


class TestCancellation:
    def test_cancel_before_run_applies_nothing(
        self, directory_config, mock_directory_client, user_repository,
        log_service, run_service, session_factory,
    ):
        job = _job(directory_config, mock_directory_client, user_repository, log_service, run_service)
        job.cancel()

        summary = job.run()

        assert summary.status == "cancelled"
        assert summary.users_created == 0
        assert _users(session_factory) == {}

    def test_cancel_takes_effect_before_next_action(
        self, directory_config, mock_directory_client, user_repository,
        log_service, run_service, session_factory,
    ):
        token = CancellationToken()

        def cancel_after_two(count):
            if count == 2:
                token.cancel()

        repository = RecordingUserRepository(user_repository, after_write=cancel_after_two)
        job = _job(
            directory_config, mock_directory_client, repository, log_service, run_service,
            token=token,
        )

        summary = job.run()

        assert summary.status == "cancelled"
        assert summary.users_created == 2
        assert set(_users(session_factory)) == {"alice", "bob"}
        assert job.progress().processed_items == 2
        infos = [e.message for e in _logs(session_factory, summary.id) if e.username]
        assert infos == ["Created user alice", "Created user bob"]

class TestProgress:
    def test_progress_counts_directory_entries_mid_apply(
        self, directory_config, user_repository, log_service, run_service, db,
    ):
        """Three unchanged users plus one new entry: 3 of 4 done before the create."""
        db.add_all([
            User(external_id=f"uuid-{name}", username=name, email=f"{name}@example.com",
                 display_name=name.title(), is_external=True)
            for name in ("alice", "bob", "carol")
        ])
        db.commit()
        client = MockDirectoryClient(entries=[
            make_entry("alice"), make_entry("bob"), make_entry("carol"), make_entry("dave"),
        ])
        seen = []
        repository = RecordingUserRepository(
            user_repository, after_write=lambda count: seen.append(job.progress()),
        )
        job = _job(directory_config, client, repository, log_service, run_service)

        job.run()

        mid_apply = seen[0]
        assert mid_apply.current_step == "Applying changes"
        assert mid_apply.total_entries == 4
        assert mid_apply.total_items == 4
        assert mid_apply.processed_items == 3
        assert mid_apply.percent == 75.0
        done = job.progress()
        assert done.processed_items == done.total_items == 4

    def test_removals_count_as_work_items(
        self, directory_config, user_repository, log_service, run_service, db,
    ):
        db.add_all([
            User(external_id="uuid-alice", username="alice", email="alice@example.com",
                 display_name="Alice", is_external=True),
            User(external_id="uuid-zed", username="zed", email="zed@example.com",
                 display_name="Zed", is_external=True),
        ])
        db.commit()
        client = MockDirectoryClient(entries=[make_entry("alice")])
        seen = []
        repository = RecordingUserRepository(
            user_repository, after_write=lambda count: seen.append(job.progress()),
        )
        job = _job(directory_config, client, repository, log_service, run_service)

        summary = job.run()

        assert summary.users_deactivated == 1
        assert (seen[0].processed_items, seen[0].total_items) == (1, 2)
        assert job.progress().processed_items == 2

    def test_unchanged_directory_is_fully_processed_before_apply(
        self, directory_config, mock_directory_client, user_repository,
        log_service, run_service,
    ):
        _job(directory_config, mock_directory_client, user_repository, log_service, run_service).run()
        job = _job(directory_config, mock_directory_client, user_repository, log_service, run_service)

        job.run()

        progress = job.progress()
        assert progress.total_items == 3
        assert progress.processed_items == 3



def test_format_duration():
    assert format_duration(0) == "0s"
    assert format_duration(59.6) == "1m 0s"
    assert format_duration(125) == "2m 5s"
    assert format_duration(3725) == "1h 2m 5s"
