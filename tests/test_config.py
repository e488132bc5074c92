from pathlib import Path

from opskit.config import DEF_SETTINGS, Settings


def test_defaults_without_environment():
    s = Settings.from_env({})
    assert s == Settings()
    assert DEF_SETTINGS.sudo == "sudo -n"
    assert DEF_SETTINGS.apt == "apt-get"


def test_environment_overrides():
    s = Settings.from_env(
        {
            "OPSKIT_DEBUG": "yes",
            "OPSKIT_SUDO": "doas",
            "OPSKIT_APT": "apt",
            "AWS_REGION": "eu-central-1",
            "OPSKIT_STACK": "web",
            "OPSKIT_SSH_USER": "admin",
            "OPSKIT_LIB_PATH": "/opt/a:/opt/b",
        }
    )
    assert s.debug is True
    assert s.sudo == "doas"
    assert s.apt == "apt"
    assert s.region == "eu-central-1"
    assert s.stack == "web"
    assert s.ssh_user == "admin"
    assert s.lib_path == [Path("/opt/a"), Path("/opt/b")]


def test_opskit_region_wins_and_empty_sudo_disables():
    s = Settings.from_env({"OPSKIT_REGION": "us-west-2", "AWS_REGION": "eu-west-1", "OPSKIT_SUDO": "", "OPSKIT_DEBUG": "0"})
    assert s.region == "us-west-2"
    assert s.sudo == ""
    assert s.debug is False
