"""Tests for the plugin hook sequence."""

from unittest.mock import MagicMock, patch

import pytest

from spunnel.cli.parsing import PortForwardRule
from spunnel.constants import EXIT_NO_JOB_INFO, EXIT_NO_NODES, EXIT_SUCCESS, RecordKind
from spunnel.core.config import PluginConfig
from spunnel.exceptions import PrivilegedPort, SessionAlreadyActive
from spunnel.lifecycle import SpunnelPlugin
from spunnel.services.session_store import FileRecordBackend
from tests.fakes import FakeRecordBackend


@pytest.fixture(autouse=True)
def no_slurm_tools():
    """Make hostlist expansion use the local fallback instead of scontrol."""
    with patch("spunnel.services.nodes.subprocess.run", side_effect=FileNotFoundError("scontrol")):
        yield


@pytest.fixture
def make_plugin(fake_backend: FakeRecordBackend, mock_popen: MagicMock, mock_runner: MagicMock):
    """Factory for plugins sharing one in-memory backend.

    Each call models a separate hook process; only the backend is shared.

    Parameters
    ----------
    fake_backend : FakeRecordBackend
        Shared record backend
    mock_popen : MagicMock
        SSH master launcher
    mock_runner : MagicMock
        Teardown command runner

    Returns
    -------
    callable
        Function returning a fresh SpunnelPlugin
    """

    def _make(config: PluginConfig | None = None, **kwargs) -> SpunnelPlugin:
        kwargs.setdefault("prober", lambda port: True)
        return SpunnelPlugin(
            config=config,
            user="alice",
            backend=fake_backend,
            popen_factory=mock_popen,
            runner=mock_runner,
            **kwargs,
        )

    return _make


class TestProcessTunnelOption:
    """Tests for the --tunnel option callback."""

    def test_collects_rules_across_options(self, make_plugin) -> None:
        plugin = make_plugin()

        plugin.process_tunnel_option("9000:9001")
        plugin.process_tunnel_option("9002:9003,9004:9005")

        assert plugin.rules == [
            PortForwardRule(9000, 9001),
            PortForwardRule(9002, 9003),
            PortForwardRule(9004, 9005),
        ]

    def test_missing_argument_is_noop(self, make_plugin, caplog: pytest.LogCaptureFixture) -> None:
        plugin = make_plugin()

        assert plugin.process_tunnel_option(None) == EXIT_SUCCESS
        assert plugin.rules == []
        assert "--tunnel requires an argument" in caplog.text

    def test_invalid_option_raises(self, make_plugin) -> None:
        with pytest.raises(PrivilegedPort):
            make_plugin().process_tunnel_option("9000:22")

    def test_from_plugin_args(self, write_config, fake_backend: FakeRecordBackend) -> None:
        write_config({"ssh_cmd": "/opt/ssh/bin/ssh", "args": "-4"})

        plugin = SpunnelPlugin.from_plugin_args(
            ["args=-o|BatchMode=yes", "unknown=1"], user="alice", backend=fake_backend
        )

        assert plugin.config == PluginConfig(
            ssh_command="/opt/ssh/bin/ssh", extra_args="-o BatchMode=yes"
        )

    def test_request_uses_configured_ssh(self, make_plugin) -> None:
        plugin = make_plugin(PluginConfig(ssh_command="ssh -q", extra_args="-o BatchMode=yes"))
        plugin.process_tunnel_option("9000:9001")

        request = plugin.build_request()

        assert request.ssh_command == "ssh -q"
        assert request.extra_args == "-o BatchMode=yes"


class TestLocalUserInit:
    """Tests for the job start hook."""

    def test_no_tunnel_option_does_nothing(self, make_plugin, mock_popen: MagicMock) -> None:
        assert make_plugin().local_user_init(nodelist="exec01") == EXIT_SUCCESS
        mock_popen.assert_not_called()

    def test_remote_context_does_nothing(self, make_plugin, mock_popen: MagicMock) -> None:
        plugin = make_plugin()
        plugin.process_tunnel_option("9000:9001")

        assert plugin.local_user_init(nodelist="exec01", remote=True) == EXIT_SUCCESS
        mock_popen.assert_not_called()

    def test_connects_to_first_node(self, make_plugin, mock_popen: MagicMock) -> None:
        plugin = make_plugin()
        plugin.process_tunnel_option("9000:9001")

        assert plugin.local_user_init(nodelist=["exec03", "exec04"]) == EXIT_SUCCESS

        assert mock_popen.call_args.args[0][1] == "exec03"
        assert plugin.store.read(RecordKind.HOST) == "exec03"

    def test_looks_up_nodes_from_job_id(self, make_plugin, mock_popen: MagicMock) -> None:
        lookup = MagicMock(return_value="gpu7")
        plugin = make_plugin(nodelist_lookup=lookup)
        plugin.process_tunnel_option("9000:9001")

        assert plugin.local_user_init(job_id=1234) == EXIT_SUCCESS

        lookup.assert_called_once_with("1234")
        assert mock_popen.call_args.args[0][1] == "gpu7"

    def test_missing_job_info(self, make_plugin, mock_popen: MagicMock) -> None:
        plugin = make_plugin()
        plugin.process_tunnel_option("9000:9001")

        assert plugin.local_user_init() == EXIT_NO_JOB_INFO
        mock_popen.assert_not_called()

    def test_job_without_nodes(self, make_plugin, mock_popen: MagicMock) -> None:
        plugin = make_plugin(nodelist_lookup=MagicMock(return_value=None))
        plugin.process_tunnel_option("9000:9001")

        assert plugin.local_user_init(job_id="1234") == EXIT_NO_NODES
        mock_popen.assert_not_called()

    def test_existing_session_raises(
        self, make_plugin, fake_backend: FakeRecordBackend, mock_popen: MagicMock
    ) -> None:
        fake_backend.put("alice-control.tunnel", "")
        plugin = make_plugin()
        plugin.process_tunnel_option("9000:9001")

        with pytest.raises(SessionAlreadyActive):
            plugin.local_user_init(nodelist="exec01")

        mock_popen.assert_not_called()


class TestExitAndStatus:
    """Tests for the exit hook and status report."""

    def test_exit_always_succeeds(self, make_plugin) -> None:
        assert make_plugin().exit() == EXIT_SUCCESS
        assert make_plugin().exit() == EXIT_SUCCESS

    def test_status_does_not_consume_host_record(self, make_plugin) -> None:
        plugin = make_plugin()
        plugin.store.write(RecordKind.HOST, "exec01")

        status = plugin.status()

        assert status == {
            "user": "alice",
            "control_path": "/tmp/alice-control.tunnel",
            "host_record": True,
            "control_record": False,
            "exit_flag": False,
            "teardown_state": "fresh",
        }
        assert plugin.store.exists(RecordKind.HOST)

    def test_default_backend_uses_state_dir(self, tmp_path) -> None:
        plugin = SpunnelPlugin(config=PluginConfig(state_dir=str(tmp_path)), user="alice")

        assert isinstance(plugin.store.backend, FileRecordBackend)
        assert plugin.store.control_path == str(tmp_path / "alice-control.tunnel")


def test_job_lifecycle_end_to_end(
    make_plugin,
    fake_backend: FakeRecordBackend,
    mock_popen: MagicMock,
    mock_runner: MagicMock,
) -> None:
    """Test establish, arm and teardown across separate hook invocations."""
    start = make_plugin()
    start.process_tunnel_option("9000:8022")
    start.local_user_init(nodelist="exec01")

    mock_popen.assert_called_once()
    assert mock_popen.call_args.args[0] == [
        "ssh",
        "exec01",
        "-L",
        "9000:localhost:8022",
        "-f",
        "-N",
        "-M",
        "-S",
        "/tmp/alice-control.tunnel",
    ]
    assert fake_backend.records["alice-host.tunnel"] == "exec01\n"

    # ssh creates the control socket once the master is up
    fake_backend.put("alice-control.tunnel", "")

    make_plugin().exit()
    mock_runner.assert_not_called()
    assert fake_backend.exists("alice-exitflag.tunnel")

    make_plugin().exit()
    mock_runner.assert_called_once()
    assert mock_runner.call_args.args[0] == [
        "ssh",
        "exec01",
        "-S",
        "/tmp/alice-control.tunnel",
        "-O",
        "exit",
    ]
    assert not fake_backend.exists("alice-host.tunnel")
    assert not fake_backend.exists("alice-exitflag.tunnel")
