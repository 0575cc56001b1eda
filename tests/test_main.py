"""Tests for the command line entry point."""

import pytest

import main


REQUIRED = {
    'SLACK_BOT_TOKEN': 'xoxb-1',
    'SETTINGS_SPREADSHEET_ID': 'settings',
    'GOOGLE_DRIVE_ROOT_FOLDER_ID': 'root',
    'GOOGLE_SERVICE_ACCOUNT_JSON': '{}',
}


@pytest.fixture
def env_file(tmp_path):
    return str(tmp_path / 'missing.env')


def test_missing_configuration(monkeypatch, env_file, capsys):
    for name in REQUIRED:
        monkeypatch.delenv(name, raising=False)

    assert main.cli(['--env-file', env_file]) == 2
    assert 'SLACK_BOT_TOKEN' in capsys.readouterr().err


def test_socket_mode_requires_app_token(monkeypatch, env_file):
    for name, value in REQUIRED.items():
        monkeypatch.setenv(name, value)
    monkeypatch.delenv('SLACK_APP_TOKEN', raising=False)

    assert main.cli(['--env-file', env_file]) == 1


def test_version(capsys):
    with pytest.raises(SystemExit):
        main.cli(['--version'])
    assert 'keihi 0.1.0' in capsys.readouterr().out


def test_unreachable_drive_root_stops_startup(monkeypatch, env_file):
    from types import SimpleNamespace
    from storage import StorageError

    def check_root():
        raise StorageError("ルートフォルダにアクセスできません。", operation='checkRoot')

    for name, value in REQUIRED.items():
        monkeypatch.setenv(name, value)
    monkeypatch.setenv('SLACK_APP_TOKEN', 'xapp-1')
    started = []
    monkeypatch.setattr(main, 'build_services',
                        lambda config: SimpleNamespace(drive=SimpleNamespace(check_root=check_root)))
    monkeypatch.setattr(main, 'SocketModeHandler', lambda *args: started.append(args))

    assert main.cli(['--env-file', env_file]) == 1
    assert started == []
