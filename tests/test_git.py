from __future__ import annotations

import subprocess

from buildgraph import git, settings


def fake_git(outputs):
    def check_output(args, **kwargs):
        key = " ".join(args[1:])
        if key not in outputs:
            raise subprocess.CalledProcessError(128, args)
        return outputs[key]
    return check_output


def test_repo_name_from_origin(monkeypatch):
    monkeypatch.setattr(subprocess, "check_output", fake_git({
        "remote get-url origin": "git@example.com:acme/widgets.git\n",
    }))

    assert git.repo_name() == "widgets"


def test_repo_name_without_remote(monkeypatch):
    monkeypatch.setattr(subprocess, "check_output", fake_git({}))

    assert git.repo_name() is None


def test_build_id_uses_head_then_timestamp(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "BUILD_ID", "")
    monkeypatch.setattr(subprocess, "check_output", fake_git({"rev-parse HEAD": "abc123\n"}))
    assert settings.build_id(tmp_path) == "abc123"

    monkeypatch.setattr(subprocess, "check_output", fake_git({}))
    assert settings.build_id(tmp_path).isdigit()
