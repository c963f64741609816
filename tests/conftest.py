"""Shared fixtures: config files, fake collaborators and a fake shell."""
import base64
import subprocess
from types import SimpleNamespace

import pytest
import yaml

from costreport_mirror.config_loader import load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of config resolution."""
    for name in (
        "COSTREPORT_MIRROR_CONFIG",
        "COSTREPORT_MIRROR_AUTH_MODE",
        "GCP_PROJECT",
        "GOOGLE_APPLICATION_CREDENTIALS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def sample_config_content(tmp_path):
    """Sample valid config content."""
    return {
        "gcp": {"project_id": "billing-project"},
        "secrets": {
            "access_key_id": "aws-access-key-id",
            "secret_access_key": "aws-secret-access-key",
        },
        "sync": {
            "source": "gcs:billing-export",
            "destination": "s3:cost-archive/gcp",
            "chunk_size": "32M",
            "upload_concurrency": 8,
            "rclone_config": str(tmp_path / "rclone.conf"),
        },
        "notify": {"topic": "mirror-alerts"},
        "run": {"lock_file": str(tmp_path / "run.lock")},
        "logging": {"file": str(tmp_path / "mirror.log")},
        "bootstrap": {
            "packages": ["curl", "cron"],
            "unit_dir": str(tmp_path / "systemd"),
            "schedule": "15 * * * *",
        },
    }


@pytest.fixture
def write_config(tmp_path):
    """Write a config mapping to a YAML file and return its path."""
    def _write(content, name="config.yml"):
        path = tmp_path / name
        with open(path, "w") as f:
            yaml.dump(content, f)
        return path
    return _write


@pytest.fixture
def config_file(write_config, sample_config_content):
    return write_config(sample_config_content)


@pytest.fixture
def mirror_config(config_file):
    return load_config(str(config_file))


def encode(value: str) -> bytes:
    return base64.b64encode(value.encode("utf-8"))


class FakeSecretClient:
    """Stands in for GCPSecretClient; maps secret names to payloads or errors."""

    def __init__(self, payloads):
        self.payloads = payloads
        self.requested = []

    def fetch_payload(self, ref):
        self.requested.append(ref.secret_name)
        result = self.payloads[ref.secret_name]
        if isinstance(result, Exception):
            raise result
        return result


class FakePublisher:
    """Records published alerts; optionally fails."""

    def __init__(self, error=None):
        self.events = []
        self.error = error

    def publish(self, event):
        self.events.append(event)
        if self.error:
            raise self.error
        return "msg-1"


@pytest.fixture
def secret_payloads():
    return {
        "aws-access-key-id": encode("AKIAEXAMPLE\n"),
        "aws-secret-access-key": encode(" s3cr3t/Key+value\r\n"),
    }


@pytest.fixture
def secret_client(secret_payloads):
    return FakeSecretClient(secret_payloads)


@pytest.fixture
def publisher():
    return FakePublisher()


class FakeShell:
    """Simulates dpkg, apt-get, curl, bash, crontab and systemctl."""

    def __init__(self, installed=(), crontab=None, fail=()):
        self.installed = set(installed)
        self.crontab = crontab
        self.fail = set(fail)
        self.calls = []

    def __call__(self, cmd, input=None, env=None, timeout=None):
        cmd = list(cmd)
        self.calls.append(cmd)
        name = cmd[0]
        if name in self.fail or " ".join(cmd[:2]) in self.fail:
            return subprocess.CompletedProcess(cmd, 100, stdout="", stderr=f"{name} broke")
        if name == "dpkg-query":
            package = cmd[-1]
            if package in self.installed:
                return subprocess.CompletedProcess(cmd, 0, stdout="install ok installed", stderr="")
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="no packages found")
        if name == "apt-get" and cmd[1] == "install":
            self.installed.update(c for c in cmd[2:] if not c.startswith("-"))
        if name == "curl":
            return subprocess.CompletedProcess(cmd, 0, stdout="#!/bin/bash\necho install\n", stderr="")
        if cmd == ["crontab", "-l"]:
            if self.crontab is None:
                return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="no crontab for root")
            return subprocess.CompletedProcess(cmd, 0, stdout=self.crontab, stderr="")
        if cmd == ["crontab", "-"]:
            self.crontab = input
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def count(self, *prefix):
        return sum(1 for call in self.calls if call[:len(prefix)] == list(prefix))


@pytest.fixture
def fake_shell():
    return FakeShell()


@pytest.fixture
def ns():
    """argparse-like namespace factory for CLI handlers."""
    def _ns(**kwargs):
        kwargs.setdefault("verbose", False)
        kwargs.setdefault("config", None)
        return SimpleNamespace(**kwargs)
    return _ns
