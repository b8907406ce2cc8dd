import socket

import pytest
from click.testing import CliRunner

from lan_discovery.cli import cli
from lan_discovery.wire import derive_handshake

from .conftest import free_udp_port


@pytest.fixture
def runner(monkeypatch):
    import os
    for key in list(os.environ):
        if key.startswith('LAN_DISCOVERY_'):
            monkeypatch.delenv(key)
    return CliRunner()


def test_handshake_for_identity(runner):
    result = runner.invoke(cli, ['handshake', '--name', 'arena', '--company', 'studio',
                                 '--app-version', '1.0'])

    assert result.exit_code == 0
    assert str(derive_handshake('arena', 'studio', '1.0')) in result.output


def test_handshake_uses_configured_override(runner, monkeypatch):
    monkeypatch.setenv('LAN_DISCOVERY_HANDSHAKE', '1234')

    result = runner.invoke(cli, ['handshake'])

    assert result.exit_code == 0
    assert '1234' in result.output


def test_discover_with_nobody_listening(runner):
    port = free_udp_port()

    result = runner.invoke(cli, ['--port', str(port), '--broadcast-address', '127.0.0.1',
                                 'discover', '--timeout', '0.2'])

    assert result.exit_code == 0
    assert 'No servers found' in result.output


def test_bad_handshake_config_is_reported(runner, monkeypatch):
    monkeypatch.setenv('LAN_DISCOVERY_HANDSHAKE', 'zzz')

    result = runner.invoke(cli, ['handshake'])

    assert result.exit_code != 0


async def _return_at_once():
    return None


def test_advertise_until_stopped(runner, monkeypatch):
    monkeypatch.setattr('lan_discovery.cli.wait_forever', _return_at_once)
    port = free_udp_port()

    result = runner.invoke(cli, ['--port', str(port), 'advertise', '--uri', 'udp://0.0.0.0:7777'])

    assert result.exit_code == 0
    assert 'Advertising' in result.output
    assert 'udp://0.0.0.0:7777' in result.output


@pytest.mark.parametrize('auto_advertise', [True, False])
def test_run_honours_auto_advertise(runner, monkeypatch, auto_advertise):
    monkeypatch.setattr('lan_discovery.cli.wait_forever', _return_at_once)
    monkeypatch.setenv('LAN_DISCOVERY_AUTO_ADVERTISE', str(auto_advertise).lower())
    port = free_udp_port()

    result = runner.invoke(cli, ['--port', str(port), '--broadcast-address', '127.0.0.1', 'run'])

    assert result.exit_code == 0
    assert ('Advertising server' in result.output) is auto_advertise


def test_advertise_on_busy_port_exits_with_error(runner):
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as busy:
        busy.bind(('', 0))
        port = busy.getsockname()[1]

        result = runner.invoke(cli, ['--port', str(port), 'advertise'])

    assert result.exit_code == 1
