"""Tests for launching background jobs."""

import os
import subprocess
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from shellfix.config import Settings
from shellfix.errors import JobLaunchFailure
from shellfix.jobs.runner import JobRunner, WORKER_MODULE

IS_WINDOWS = sys.platform == "win32"
skip_on_windows = pytest.mark.skipif(IS_WINDOWS, reason="Test not compatible with Windows")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_mock_process(poll_return=None, pid=12345):
    """Create a mock subprocess.Popen."""
    proc = MagicMock(spec=subprocess.Popen)
    proc.poll.return_value = poll_return
    proc.pid = pid
    return proc


@pytest.fixture
def runner(temp_dir, fake_clock):
    return JobRunner(
        jobs_dir=Path(temp_dir) / "ai_jobs",
        python="/usr/bin/python3",
        clock=fake_clock,
        wall_clock=lambda: 1700000000.5,
        pid=4321,
    )


@pytest.fixture
def settings():
    return Settings(api_key="sk-test", base_url="https://h/v1", timeout_secs=12)


# ===========================================================================
# TestJobIds
# ===========================================================================

class TestJobIds:
    """Test job id allocation."""

    def test_ids_unique(self, runner):
        assert runner.next_job_id() == "1700000000-4321-1"
        assert runner.next_job_id() == "1700000000-4321-2"

    def test_runners_in_separate_shells_never_share_ids(self, temp_dir, settings):
        jobs_dir = Path(temp_dir) / "ai_jobs"
        first = JobRunner(jobs_dir=jobs_dir, wall_clock=lambda: 1700000000.4, pid=101)
        second = JobRunner(jobs_dir=jobs_dir, wall_clock=lambda: 1700000000.9, pid=202)
        assert first.next_job_id() != second.next_job_id()

        with patch("shellfix.jobs.runner.subprocess.Popen", return_value=_make_mock_process()):
            job_a = first.start("{}", settings)
            job_b = second.start("{}", settings)
        assert set(job_a.paths.all()).isdisjoint(job_b.paths.all())

    def test_default_pid(self):
        assert JobRunner(wall_clock=lambda: 7.0).next_job_id() == f"7-{os.getpid()}-1"

    def test_default_jobs_dir(self, state_dir):
        assert JobRunner().jobs_dir == state_dir / "ai_jobs"


# ===========================================================================
# TestStart
# ===========================================================================

class TestStart:
    """Test starting a job."""

    def test_start_writes_request_and_launches(self, runner, settings, fake_clock):
        proc = _make_mock_process()
        with patch("shellfix.jobs.runner.subprocess.Popen", return_value=proc) as mock_popen:
            job = runner.start('{"model": "m"}', settings)

        assert job.id == "1700000000-4321-1"
        assert job.process is proc
        assert job.started_at == fake_clock.now
        assert job.paths.request.read_text() == '{"model": "m"}'
        assert job.paths.request.name == "ai_fix_1700000000-4321-1.request.json"

        argv = mock_popen.call_args[0][0]
        assert argv[:3] == ["/usr/bin/python3", "-m", WORKER_MODULE]
        assert argv[3:5] == ["https://h/v1", "12"]
        assert argv[5:] == [str(p) for p in job.paths.all()]

        kwargs = mock_popen.call_args[1]
        assert kwargs["env"]["SHELLFIX_API_KEY"] == "sk-test"
        assert kwargs["stdin"] == subprocess.DEVNULL
        assert kwargs["stdout"] == subprocess.DEVNULL

    @skip_on_windows
    def test_start_detaches(self, runner, settings):
        with patch("shellfix.jobs.runner.subprocess.Popen", return_value=_make_mock_process()) as mock_popen:
            runner.start("{}", settings)
        assert mock_popen.call_args[1]["start_new_session"] is True

    def test_api_key_not_on_command_line(self, runner, settings):
        with patch("shellfix.jobs.runner.subprocess.Popen", return_value=_make_mock_process()) as mock_popen:
            runner.start("{}", settings)
        assert "sk-test" not in mock_popen.call_args[0][0]

    def test_launch_failure_cleans_up(self, runner, settings):
        with patch("shellfix.jobs.runner.subprocess.Popen", side_effect=OSError("no python")):
            with pytest.raises(JobLaunchFailure) as exc_info:
                runner.start("{}", settings)
        assert exc_info.value.user_message == "Could not analyze this error right now."
        assert list(runner.jobs_dir.iterdir()) == []

    def test_unwritable_jobs_dir(self, temp_dir, settings):
        blocker = Path(temp_dir) / "file"
        blocker.write_text("")
        runner = JobRunner(jobs_dir=blocker / "ai_jobs")
        with pytest.raises(JobLaunchFailure):
            runner.start("{}", settings)


# ===========================================================================
# TestLifecycle
# ===========================================================================

class TestLifecycle:
    """Test cleanup and termination."""

    def test_cleanup_removes_all_artifacts(self, runner, settings):
        with patch("shellfix.jobs.runner.subprocess.Popen", return_value=_make_mock_process(0)):
            job = runner.start("{}", settings)
        for path in job.paths.all()[1:]:
            path.write_text("x")
        job.paths.status.with_name(job.paths.status.name + ".tmp").write_text("0")

        runner.cleanup(job)

        assert list(runner.jobs_dir.iterdir()) == []
        job.process.poll.assert_called()

    def test_cleanup_missing_files_ok(self, runner, settings):
        with patch("shellfix.jobs.runner.subprocess.Popen", return_value=_make_mock_process()):
            job = runner.start("{}", settings)
        runner.cleanup(job)
        runner.cleanup(job)

    @skip_on_windows
    def test_terminate_kills_process_group(self, runner, settings):
        with patch("shellfix.jobs.runner.subprocess.Popen", return_value=_make_mock_process()):
            job = runner.start("{}", settings)
        with patch("shellfix.jobs.runner.os.getpgid", return_value=777), \
                patch("shellfix.jobs.runner.os.killpg") as mock_killpg:
            runner.terminate(job)
        assert mock_killpg.call_args[0][0] == 777

    def test_terminate_finished_process_noop(self, runner, settings):
        with patch("shellfix.jobs.runner.subprocess.Popen", return_value=_make_mock_process(0)):
            job = runner.start("{}", settings)
        with patch("shellfix.jobs.runner.os.killpg") as mock_killpg:
            runner.terminate(job)
        mock_killpg.assert_not_called()
