from unittest.mock import MagicMock, patch

from giverep import scheduler


def test_run_job_closes_session():
    session = MagicMock()
    job = MagicMock(return_value={"ok": True})
    with patch("giverep.scheduler.SessionLocal", return_value=session):
        scheduler.run_job("job", job)

    job.assert_called_once_with(session)
    session.close.assert_called_once()
    session.rollback.assert_not_called()


def test_run_job_swallows_and_rolls_back_failures():
    session = MagicMock()
    job = MagicMock(side_effect=RuntimeError("boom"))
    with patch("giverep.scheduler.SessionLocal", return_value=session):
        scheduler.run_job("job", job)

    session.rollback.assert_called_once()
    session.close.assert_called_once()


def test_start_and_shutdown_scheduler():
    fake = MagicMock()
    fake.running = True
    fake.get_jobs.return_value = []
    with patch("giverep.scheduler.BackgroundScheduler", return_value=fake):
        assert scheduler.start_scheduler() is fake
        assert scheduler.start_scheduler() is fake
        scheduler.shutdown_scheduler()

    job_ids = {c.kwargs["id"] for c in fake.add_job.call_args_list}
    assert job_ids == {
        "collect_mindshare_tweets",
        "refresh_recent_metrics",
        "calculate_mindshare_metrics",
        "deactivate_expired_projects",
        "cleanup_user_info",
    }
    fake.start.assert_called_once()
    fake.shutdown.assert_called_once_with(wait=False)
