"""Tests for the deferred bootstrap: readiness, installs, cron, unit."""
import dataclasses
from unittest import mock

import pytest

from conftest import FakeShell
from costreport_mirror.bootstrap.domains import installer, scheduler, systemd_unit
from costreport_mirror.bootstrap.domains.readiness import wait_until_ready
from costreport_mirror.bootstrap.domains.shell import run_command
from costreport_mirror.bootstrap.workflows import launcher
from costreport_mirror.errors import BootstrapInstallError


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class TestReadiness:

    def test_returns_as_soon_as_reachable(self):
        clock = FakeClock()
        answers = iter([False, False, True])

        ready = wait_until_ready(
            "metadata", 80, max_wait_seconds=60, poll_interval_seconds=5,
            probe=lambda h, p: next(answers), sleep=clock.sleep, clock=clock,
        )

        assert ready is True
        assert clock.sleeps == [5, 5]

    def test_gives_up_after_max_wait(self):
        clock = FakeClock()

        ready = wait_until_ready(
            "metadata", 80, max_wait_seconds=12, poll_interval_seconds=5,
            probe=lambda h, p: False, sleep=clock.sleep, clock=clock,
        )

        assert ready is False
        assert sum(clock.sleeps) == 12
        assert clock.sleeps == [5, 5, 2]

    def test_min_delay_counts_against_max_wait(self):
        clock = FakeClock()

        wait_until_ready(
            "metadata", 80, max_wait_seconds=10, poll_interval_seconds=5, min_delay_seconds=8,
            probe=lambda h, p: False, sleep=clock.sleep, clock=clock,
        )

        assert clock.sleeps == [8, 2]

    def test_no_wait_when_immediately_reachable(self):
        clock = FakeClock()
        assert wait_until_ready("h", 1, 30, probe=lambda h, p: True, sleep=clock.sleep, clock=clock)
        assert clock.sleeps == []


class TestInstaller:

    def test_missing_packages(self):
        shell = FakeShell(installed={"curl"})
        assert installer.missing_packages(["curl", "cron"], shell) == ["cron"]

    def test_installs_only_missing(self):
        shell = FakeShell(installed={"curl"})
        assert installer.install_packages(["curl", "cron"], shell) == ["cron"]
        assert ["apt-get", "install", "-y", "-q", "--no-install-recommends", "cron"] in shell.calls

    def test_install_twice_is_a_no_op(self):
        shell = FakeShell()
        installer.install_packages(["curl", "cron"], shell)
        assert installer.install_packages(["curl", "cron"], shell) == []
        assert shell.count("apt-get", "install") == 1

    def test_apt_failure(self):
        shell = FakeShell(fail={"apt-get install"})
        with pytest.raises(BootstrapInstallError) as exc_info:
            installer.install_packages(["cron"], shell)
        assert exc_info.value.exit_code == 5

    def test_rclone_present_skips_download(self):
        shell = FakeShell()
        assert installer.install_rclone("https://rclone.org/install.sh", shell, lambda: True) is False
        assert shell.calls == []

    def test_rclone_installed_via_script(self):
        shell = FakeShell()
        present = iter([False, True])

        assert installer.install_rclone("https://rclone.org/install.sh", shell, lambda: next(present)) is True
        assert shell.calls[0] == ["curl", "-fsSL", "https://rclone.org/install.sh"]
        assert shell.calls[1] == ["bash", "-s"]

    def test_rclone_script_already_current_is_success(self):
        def shell(cmd, input=None, env=None, timeout=None):
            if cmd[0] == "curl":
                return FakeShell()(cmd)
            return mock.Mock(returncode=installer.RCLONE_ALREADY_CURRENT, stderr="")

        present = iter([False, True])
        assert installer.install_rclone("url", shell, lambda: next(present)) is True

    def test_rclone_download_failure(self):
        shell = FakeShell(fail={"curl"})
        with pytest.raises(BootstrapInstallError):
            installer.install_rclone("url", shell, lambda: False)

    def test_rclone_missing_after_script(self):
        with pytest.raises(BootstrapInstallError):
            installer.install_rclone("url", FakeShell(), lambda: False)


LINE = "0 * * * * /usr/bin/costreport-mirror --config /etc/c.yml run # costreport-mirror"


class TestScheduler:

    def test_register_on_empty_crontab(self):
        shell = FakeShell(crontab=None)
        assert scheduler.register(LINE, shell) is True
        assert shell.crontab == LINE + "\n"

    def test_register_twice_does_not_duplicate(self):
        shell = FakeShell(crontab="MAILTO=ops\n")
        scheduler.register(LINE, shell)
        assert scheduler.register(LINE, shell) is False
        assert shell.crontab.splitlines() == ["MAILTO=ops", LINE]
        assert shell.count("crontab", "-") == 1

    def test_changed_schedule_replaces_old_entry(self):
        old = LINE.replace("0 * * * *", "30 2 * * *")
        shell = FakeShell(crontab=f"{old}\n5 5 * * * other-job\n")

        assert scheduler.register(LINE, shell) is True
        assert shell.crontab.splitlines() == ["5 5 * * * other-job", LINE]

    def test_duplicates_collapsed(self):
        shell = FakeShell(crontab=f"{LINE}\n{LINE}\n")
        assert scheduler.register(LINE, shell) is True
        assert shell.crontab.splitlines().count(LINE) == 1

    def test_is_registered(self):
        assert scheduler.is_registered(LINE, FakeShell(crontab=f"  {LINE}\n"))
        assert not scheduler.is_registered(LINE, FakeShell(crontab=None))

    def test_unreadable_crontab(self):
        def shell(cmd, input=None, env=None, timeout=None):
            return mock.Mock(returncode=1, stdout="", stderr="permission denied")

        with pytest.raises(BootstrapInstallError):
            scheduler.register(LINE, shell)

    def test_cron_line(self):
        with mock.patch.object(scheduler.shutil, "which", return_value="/usr/local/bin/costreport-mirror"):
            line = scheduler.cron_line("0 */6 * * *", "/etc/costreport-mirror/config.yml", "/var/log/m.log")
        assert line == (
            "0 */6 * * * /usr/local/bin/costreport-mirror --config /etc/costreport-mirror/config.yml run"
            " >>/var/log/m.log 2>&1 # costreport-mirror"
        )

    def test_cron_line_falls_back_to_module(self):
        with mock.patch.object(scheduler.shutil, "which", return_value=None):
            line = scheduler.cron_line("0 * * * *", "/c.yml")
        assert "-m costreport_mirror.cli.main --config /c.yml run" in line
        assert ">>" not in line


class TestSystemdUnit:

    def test_install_writes_and_starts(self, tmp_path, fake_shell):
        result = systemd_unit.install_unit(str(tmp_path), "boot.service", "/usr/bin/cm bootstrap", fake_shell)

        assert result == {"written": True, "started": True}
        content = (tmp_path / "boot.service").read_text()
        assert "Type=oneshot" in content
        assert "RemainAfterExit=yes" in content
        assert "ExecStart=/usr/bin/cm bootstrap" in content
        assert ["systemctl", "enable", "--now", "--no-block", "boot.service"] in fake_shell.calls

    def test_unchanged_unit_not_rewritten(self, tmp_path, fake_shell):
        systemd_unit.install_unit(str(tmp_path), "boot.service", "cmd", fake_shell)
        result = systemd_unit.install_unit(str(tmp_path), "boot.service", "cmd", fake_shell)
        assert result["written"] is False

    def test_systemctl_failure(self, tmp_path):
        with pytest.raises(BootstrapInstallError):
            systemd_unit.install_unit(str(tmp_path), "boot.service", "cmd", FakeShell(fail={"systemctl"}))


class TestLauncher:

    @pytest.fixture
    def no_wait(self):
        return mock.Mock(return_value=True)

    def test_full_sequence(self, mirror_config, no_wait):
        shell = FakeShell()
        run_once = mock.Mock(return_value=0)
        present = iter([False, True])

        code = launcher.bootstrap(
            mirror_config, runner=shell, wait=no_wait, run_once=run_once,
            rclone_present=lambda: next(present),
        )

        assert code == 0
        no_wait.assert_called_once()
        assert no_wait.call_args.args == ("metadata.google.internal", 80)
        assert shell.installed == {"curl", "cron"}
        assert shell.crontab.count("# costreport-mirror") == 1
        run_once.assert_called_once_with(mirror_config)

    def test_rerun_is_idempotent(self, mirror_config, no_wait):
        shell = FakeShell()
        run_once = mock.Mock(return_value=0)

        launcher.bootstrap(mirror_config, shell, no_wait, run_once, rclone_present=lambda: True)
        crontab_after_first = shell.crontab
        launcher.bootstrap(mirror_config, shell, no_wait, run_once, rclone_present=lambda: True)

        assert shell.crontab == crontab_after_first
        assert shell.count("apt-get", "install") == 1
        assert shell.count("crontab", "-") == 1
        assert shell.count("curl") == 0
        assert run_once.call_count == 2

    def test_first_run_exit_code_returned(self, mirror_config, no_wait):
        code = launcher.bootstrap(
            mirror_config, FakeShell(), no_wait, mock.Mock(return_value=7), rclone_present=lambda: True,
        )
        assert code == 7

    def test_install_failure_alerts_and_skips_run(self, mirror_config, no_wait, publisher):
        run_once = mock.Mock()

        code = launcher.bootstrap(
            mirror_config, FakeShell(fail={"apt-get update"}), no_wait, run_once,
            rclone_present=lambda: True, publisher=publisher,
        )

        assert code == 5
        run_once.assert_not_called()
        assert [e.exit_code for e in publisher.events] == [5]

    def test_bootstrap_state(self, mirror_config):
        shell = FakeShell(installed={"curl"})
        state = launcher.bootstrap_state(mirror_config, shell, rclone_present=lambda: True)

        assert state.tool_installed
        assert state.missing_packages == ["cron"]
        assert not state.schedule_registered
        assert not state.unit_installed
        assert not state.complete

    def test_bootstrap_state_after_bootstrap(self, mirror_config, no_wait):
        shell = FakeShell()
        launcher.bootstrap(mirror_config, shell, no_wait, mock.Mock(return_value=0), rclone_present=lambda: True)

        state = launcher.bootstrap_state(mirror_config, shell, rclone_present=lambda: True)

        assert state.complete

    def test_install_bootstrap_unit(self, mirror_config, fake_shell):
        result = launcher.install_bootstrap_unit(mirror_config, fake_shell)

        assert result["written"]
        unit = mirror_config.bootstrap.unit_dir + "/" + mirror_config.bootstrap.unit_name
        with open(unit) as f:
            assert f"--config {mirror_config.path} bootstrap" in f.read()


class TestShell:

    def test_missing_executable_reported_as_127(self):
        result = run_command(["definitely-not-a-real-binary-xyz"])
        assert result.returncode == 127
