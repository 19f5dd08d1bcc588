"""End-to-end tests: a real paramiko client against GitGoodServer.

The server listens on an ephemeral loopback port. Git executables are not
needed; exec requests that the dispatcher rejects and SFTP sessions are
enough to exercise the transport wiring.
"""

import threading

import paramiko
import pytest

from gitgood.models import ServerSettings
from gitgood.server import GitGoodServer

pytestmark = [pytest.mark.integration]


@pytest.fixture(scope="module")
def host_key():
    return paramiko.RSAKey.generate(2048)


@pytest.fixture(scope="module")
def client_key():
    return paramiko.RSAKey.generate(2048)


@pytest.fixture
def server(tmp_path, host_key):
    repos = tmp_path / "repos"
    settings = ServerSettings(
        host="127.0.0.1",
        port=0,
        repos_dir=repos,
        sftp_root=tmp_path / "files",
        host_key_path=tmp_path / "unused",
    )
    srv = GitGoodServer(settings, host_key)
    srv.bind()
    thread = threading.Thread(target=srv.serve_forever, daemon=True)
    thread.start()
    yield srv
    srv.shutdown()
    thread.join(timeout=5)


@pytest.fixture
def client(server, client_key):
    ssh = paramiko.SSHClient()
    ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    host, port = server.address
    ssh.connect(
        host, port=port, username="alice", pkey=client_key,
        look_for_keys=False, allow_agent=False, timeout=10,
    )
    yield ssh
    ssh.close()


def _exec(client, command):
    _, stdout, stderr = client.exec_command(command, timeout=10)
    status = stdout.channel.recv_exit_status()
    return status, stdout.read(), stderr.read()


def test_banner(client):
    version = client.get_transport().remote_version
    assert version == "SSH-2.0-GitGood_v.0.0.1"


def test_disallowed_command(client):
    status, out, err = _exec(client, "rm -rf")
    assert status == 1
    assert out == b""
    assert err == b"Git Good: invalid command\n"


def test_traversal_argument(client):
    status, _, err = _exec(client, "git-upload-pack '../../etc'")
    assert status == 1
    assert b"traversal" in err


def test_sftp_round_trip(client, server):
    sftp = client.open_sftp()
    try:
        sftp.mkdir("/alice")
        with sftp.open("/alice/notes.txt", "w") as fh:
            fh.write(b"hello")
        assert sftp.listdir("/alice") == ["notes.txt"]
        with sftp.open("/alice/notes.txt", "r") as fh:
            assert fh.read() == b"hello"
        assert sftp.normalize("../../..") == "/"
    finally:
        sftp.close()
    assert (server.settings.sftp_root / "alice" / "notes.txt").read_bytes() == b"hello"
