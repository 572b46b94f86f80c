"""Tests for the gpg identity manager."""

import asyncio

import pytest
from pathlib import Path
from unittest.mock import AsyncMock, patch

from rhagent.errors import FatalError
from rhagent.pki.gpg import GpgIdentity
from rhagent.utils.process import CommandResult


@pytest.fixture
def engine():
    engine = AsyncMock()
    engine.instance_exists.return_value = True
    return engine


@pytest.fixture
def identity(agent_config, engine):
    identity = GpgIdentity(agent_config, engine)
    identity.keyring_dir("c1").mkdir(parents=True)
    return identity


def _gen_key_creates_secret(cmd, **kwargs):
    """Fake gpg that writes the secret keyring named in the defaults file."""
    if "--gen-key" in cmd:
        defaults = Path(cmd[-1]).read_text()
        for line in defaults.splitlines():
            if line.startswith("%secring "):
                Path(line.split(" ", 1)[1]).write_text("secret")
    return CommandResult(returncode=0)


@pytest.mark.asyncio
class TestGenerateKey:
    """Test keypair generation."""

    async def test_container_key_generated_once(self, identity):
        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.side_effect = _gen_key_creates_secret

            await identity.generate_key("c1")
            await identity.generate_key("c1")

            gen_calls = [c for c in mock_run.call_args_list if "--gen-key" in c.args[0]]
            assert len(gen_calls) == 1
            assert identity.secret_keyring("c1").exists()

    async def test_concurrent_generation_runs_gen_key_once(self, identity):
        async def slow_gpg(cmd, **kwargs):
            await asyncio.sleep(0.01)
            return _gen_key_creates_secret(cmd, **kwargs)

        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.side_effect = slow_gpg

            await asyncio.gather(identity.generate_key("c1"), identity.generate_key("c1"))

            gen_calls = [c for c in mock_run.call_args_list if "--gen-key" in c.args[0]]
            assert len(gen_calls) == 1

    async def test_name_lock_released_after_generation(self, identity):
        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.side_effect = _gen_key_creates_secret
            await asyncio.gather(identity.generate_key("c1"), identity.generate_key("c1"))

        assert identity._locks == {}
        assert identity._lock_users == {}

    async def test_name_lock_released_after_failure(self, identity):
        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = CommandResult(returncode=2, stderr="gpg: agent not found")
            with pytest.raises(FatalError):
                await identity.generate_key("c1")

        assert identity._locks == {}

    async def test_container_key_params(self, identity, agent_config):
        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.side_effect = _gen_key_creates_secret
            await identity.generate_key("c1")

        defaults = (identity.keyring_dir("c1") / "defaults").read_text()
        assert "Key-Type: RSA" in defaults
        assert "Key-Length: 2048" in defaults
        assert "Name-Email: c1@subutai.io" in defaults
        assert f"Passphrase: {agent_config.agent.gpg_password}" in defaults
        assert f"%pubring {identity.keyring_dir('c1')}/public.pub" in defaults

    async def test_existing_secret_skips_generation(self, identity):
        identity.secret_keyring("c1").write_text("secret")

        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            await identity.generate_key("c1")

            mock_run.assert_not_called()

    async def test_generation_failure_is_fatal(self, identity):
        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = CommandResult(returncode=2, stderr="gpg: agent not found")

            with pytest.raises(FatalError):
                await identity.generate_key("c1")

    async def test_host_key_uses_plain_name_and_imports(self, identity, engine, agent_config):
        engine.instance_exists.return_value = False
        host_dir = Path(agent_config.agent.host_key_dir)

        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.side_effect = _gen_key_creates_secret
            await identity.generate_key("rh@subutai.io")

            defaults = (host_dir / "defaults").read_text()
            assert "Name-Email: rh@subutai.io\n" in defaults
            assert oct(host_dir.stat().st_mode & 0o777) == "0o700"

            imports = [c.args[0] for c in mock_run.call_args_list if "--import" in c.args[0]]
            assert imports[0][-3:] == ["--allow-secret-key-import", "--import", str(host_dir / "secret.sec")]
            assert imports[1][-2:] == ["--import", str(host_dir / "public.pub")]

    async def test_host_import_failure_removes_locks(self, identity, engine, agent_config):
        engine.instance_exists.return_value = False
        host_dir = Path(agent_config.agent.host_key_dir)
        host_dir.mkdir(parents=True)
        (host_dir / "secret.sec").write_text("secret")
        gpg_home = Path(agent_config.agent.gpg_home)
        gpg_home.mkdir(parents=True)
        lock = gpg_home / "pubring.gpg.lock"
        lock.write_text("")

        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = CommandResult(returncode=2, stderr="gpg: keyring locked")
            await identity.generate_key("rh@subutai.io")

        assert not lock.exists()


@pytest.mark.asyncio
class TestFingerprint:
    """Test fingerprint lookup."""

    async def test_host_identity_uses_default_keyring(self, identity, agent_config):
        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = CommandResult(
                returncode=0, stdout="      Key fingerprint = AAAA BBBB CCCC\n"
            )

            fingerprint = await identity.get_fingerprint(agent_config.agent.gpg_user)

            assert fingerprint == "AAAABBBBCCCC"
            cmd = mock_run.call_args.args[0]
            assert cmd == ["gpg1", "--fingerprint", "rh@subutai.io"]
            assert mock_run.call_args.kwargs["env"]["GNUPGHOME"] == agent_config.agent.gpg_home

    async def test_container_uses_scoped_keyring(self, identity):
        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = CommandResult(returncode=0, stdout="")

            assert await identity.get_fingerprint("c1") == ""

            cmd = mock_run.call_args.args[0]
            assert cmd == ["gpg1", "--fingerprint", "--keyring", str(identity.public_keyring("c1")), "c1"]


@pytest.mark.asyncio
class TestPublicKeys:
    """Test public key export and import helpers."""

    async def test_get_pk_generates_when_missing(self, identity):
        identity.generate_key = AsyncMock()
        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.side_effect = [
                CommandResult(returncode=0, stdout=""),
                CommandResult(returncode=0, stdout="-----BEGIN PGP PUBLIC KEY BLOCK-----"),
            ]

            key = await identity.get_pk("rh@subutai.io")

        identity.generate_key.assert_awaited_once_with("rh@subutai.io")
        assert key.startswith("-----BEGIN PGP")

    async def test_get_pk_existing(self, identity):
        identity.generate_key = AsyncMock()
        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = CommandResult(returncode=0, stdout="KEY")

            assert await identity.get_pk("rh@subutai.io") == "KEY"

        identity.generate_key.assert_not_called()

    async def test_get_container_pk(self, identity):
        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = CommandResult(returncode=0, stdout="KEY")

            assert await identity.get_container_pk("c1") == "KEY"
            cmd = mock_run.call_args.args[0]
            assert cmd[-3:] == ["--export", "-a", "c1@subutai.io"]

    async def test_import_pk_removes_temp_file(self, identity):
        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = CommandResult(returncode=0, stderr="gpg: key 8E7D8B0C: imported")

            output = await identity.import_pk(b"KEY")

            key_file = Path(mock_run.call_args.args[0][-1])
            assert not key_file.exists()
            assert "imported" in output

    async def test_encrypt_signs_and_encrypts(self, identity):
        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = CommandResult(returncode=0, stdout="-----BEGIN PGP MESSAGE-----")

            out = await identity.encrypt("c1@subutai.io", "8E7D8B0C", b"hello")

            cmd = mock_run.call_args.args[0]
            assert "--sign" in cmd and "--encrypt" in cmd
            assert cmd[cmd.index("-r") + 1] == "8E7D8B0C"
            assert mock_run.call_args.kwargs["input"] == b"hello"
            assert out.startswith("-----BEGIN PGP MESSAGE")

    async def test_decrypt_with_container_keyrings(self, identity, agent_config):
        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = CommandResult(returncode=0, stdout="hello")

            out = await identity.decrypt(
                "-----BEGIN PGP MESSAGE-----",
                secret_keyring=identity.secret_keyring("c1"),
                keyring=identity.public_keyring("c1"),
            )

            cmd = mock_run.call_args.args[0]
            assert cmd[0] == "gpg1"
            assert cmd[cmd.index("--passphrase") + 1] == agent_config.agent.gpg_password
            assert cmd[cmd.index("--secret-keyring") + 1] == str(identity.secret_keyring("c1"))
            assert cmd[cmd.index("--keyring") + 1] == str(identity.public_keyring("c1"))
            assert "--encrypt" not in cmd
            assert mock_run.call_args.kwargs["input"] == b"-----BEGIN PGP MESSAGE-----"
            assert out == "hello"

    async def test_decrypt_failure_returns_empty(self, identity):
        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = CommandResult(returncode=2, stderr="gpg: decryption failed: secret key not available")

            assert await identity.decrypt("garbage") == ""

    async def test_extract_key_id(self, identity):
        with patch("rhagent.pki.gpg.run_command", new_callable=AsyncMock) as mock_run:
            mock_run.return_value = CommandResult(returncode=0, stdout="pub  2048R/8E7D8B0C 2017-03-14 m\n")

            assert await identity.extract_key_id(b"KEY") == "8E7D8B0C"
