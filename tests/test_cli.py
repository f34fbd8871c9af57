import json
import logging

import pytest

from src.common.logging import _file_logger_name
from src.coordinator import cli
from src.coordinator.agent import Role
from src.coordinator.agent_args import TargetConfig, build_agent_args

TH_SUMMARY = {"throughput": 9800.0}
LT_SUMMARY = {"throughput": 4990.0, "latency_us": {"avg": 40.0, "p99": 95.0}}


def _argv(tmp_path, *extra):
    return [
        "--target", "10.0.0.1:8000",
        "--th-agents", "th1,th2",
        "--lt-agents", "lt1",
        "--lt-rate", "5000",
        "--ci-size", "95",
        "--com-proto", "TCP",
        "--results-dir", str(tmp_path),
        "--no-redis",
        *extra,
    ]


@pytest.fixture
def fleet_net(fake_agent, fake_network):
    def _make(**behaviour):
        agents = [
            fake_agent("th1", summary=TH_SUMMARY, **behaviour.get("th1", {})),
            fake_agent("th2", summary=TH_SUMMARY, **behaviour.get("th2", {})),
            fake_agent("lt1", summary=LT_SUMMARY, **behaviour.get("lt1", {})),
        ]
        return fake_network(agents, unresolvable=behaviour.get("unresolvable", ()))
    return _make


def test_print_agent_args_is_reproducible(tmp_path, capsys):
    argv = _argv(tmp_path, "--print-agent-args", "--th-threads", "4")
    assert cli.run(argv) == 0
    first = capsys.readouterr().out
    assert cli.run(argv) == 0
    second = capsys.readouterr().out
    assert first == second

    mapping = json.loads(first)
    target = TargetConfig(target="10.0.0.1:8000", th_threads=4)
    assert mapping == {
        "th1": build_agent_args(Role.THROUGHPUT, target),
        "th2": build_agent_args(Role.THROUGHPUT, target),
        "lt1": build_agent_args(Role.LATENCY, target),
    }


def test_end_to_end_success(tmp_path, fleet_net, capsys):
    net = fleet_net()
    assert cli.run(_argv(tmp_path), dial=net, sleep=lambda s: None) == 0
    net.join_all()

    assert net.dialed_hosts == ["th1", "th2", "lt1"]
    for agent in net.agents.values():
        configure = agent.of_type("configure")
        assert len(configure) == 1
        assert configure[0]["wait_conn"] is True
        assert (configure[0]["rate"], configure[0]["ci_size"]) == (5000, 95)
        assert "start" in agent.types

    (run_dir,) = tmp_path.iterdir()
    meta = json.loads((run_dir / "run_meta.json").read_text())
    assert meta["status"] == "completed"
    assert meta["rounds"][0]["reports"]["lt1"] == LT_SUMMARY
    assert (run_dir / "events.jsonl").is_file()
    assert "RESULTS" in capsys.readouterr().out


def test_end_to_end_agent_failure(tmp_path, fleet_net, capsys):
    net = fleet_net(th2={"status": "failed"})
    assert cli.run(_argv(tmp_path), dial=net, sleep=lambda s: None) == 1
    net.join_all()

    err = capsys.readouterr().err
    assert "th2" in err
    (run_dir,) = tmp_path.iterdir()
    meta = json.loads((run_dir / "run_meta.json").read_text())
    assert meta["status"] == "failed"
    assert {a["name"]: a["status"] for a in meta["agents"]}["th2"] == "failed"


def test_connectionless_protocol_does_not_wait(tmp_path, fleet_net):
    net = fleet_net()
    argv = _argv(tmp_path)
    argv[argv.index("TCP")] = "UDP"
    assert cli.run(argv, dial=net, sleep=lambda s: None) == 0
    net.join_all()
    assert all(a.of_type("configure")[0]["wait_conn"] is False for a in net.agents.values())


def test_connection_failure_sends_no_start(tmp_path, fleet_net, capsys):
    net = fleet_net(unresolvable={"th2"})
    assert cli.run(_argv(tmp_path), dial=net, sleep=lambda s: None) == 1
    net.join_all()

    assert net.dialed_hosts == ["th1", "th2"]
    assert net.opened["th1"].fileno() == -1
    assert all(a.received == [] for a in net.agents.values())
    assert "th2" in capsys.readouterr().err


def test_configuration_error_before_any_connection(tmp_path, fleet_net, capsys):
    net = fleet_net()
    argv = _argv(tmp_path, "--sym-agents", "sym1", "--nic-ts")
    assert cli.run(argv, dial=net, sleep=lambda s: None) == 1
    assert net.dialed == []
    assert "No interfaces" in capsys.readouterr().err


def test_run_agents_launches_then_releases_sessions(tmp_path, fleet_net):
    net = fleet_net()
    launched = []

    class Session:
        def __init__(self, host):
            self.host = host
            self.closed = False

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            self.closed = True

    def fake_launch(host, key, args):
        session = Session(host)
        launched.append((session, args))
        return session

    argv = _argv(tmp_path, "--run-agents", "--private-key", "/keys/id")
    assert cli.run(argv, dial=net, launch=fake_launch, sleep=lambda s: None) == 0
    net.join_all()

    assert [s.host for s, _ in launched] == ["th1", "th2", "lt1"]
    assert launched[0][1] == launched[1][1] != launched[2][1]
    assert all(s.closed for s, _ in launched)


def test_reports_handed_off_to_redis(tmp_path, fleet_net, monkeypatch):
    runs, reports = [], []
    monkeypatch.setattr(cli, "store_run", lambda run_id, meta: runs.append((run_id, meta)))
    monkeypatch.setattr(cli, "store_agent_report", lambda run_id, rep: reports.append(rep))
    net = fleet_net()
    argv = [a for a in _argv(tmp_path) if a != "--no-redis"]
    assert cli.run(argv, dial=net, sleep=lambda s: None) == 0
    net.join_all()

    assert len(runs) == 1
    assert runs[0][1]["status"] == "completed"
    assert [r["agent"] for r in reports] == ["th1", "th2", "lt1"]


def test_redis_outage_is_not_fatal(tmp_path, fleet_net, monkeypatch, capsys):
    from redis.exceptions import ConnectionError as RedisConnectionError

    def down(*args):
        raise RedisConnectionError("connection refused")

    monkeypatch.setattr(cli, "store_run", down)
    net = fleet_net()
    argv = [a for a in _argv(tmp_path) if a != "--no-redis"]
    assert cli.run(argv, dial=net, sleep=lambda s: None) == 0
    net.join_all()
    assert "Redis store failed" in capsys.readouterr().out


def test_failed_later_round_keeps_earlier_reports(tmp_path, fleet_net):
    net = fleet_net(th1={"fail_round": 2})
    argv = _argv(tmp_path, "--load-pattern", "step:100:100:200")
    assert cli.run(argv, dial=net, sleep=lambda s: None) == 1
    net.join_all()

    (run_dir,) = tmp_path.iterdir()
    meta = json.loads((run_dir / "run_meta.json").read_text())
    assert meta["status"] == "failed"
    assert [r["round"] for r in meta["rounds"]] == [1, 2]
    assert meta["rounds"][0]["reports"]["th1"] == TH_SUMMARY
    assert set(meta["rounds"][1]["reports"]) == {"th1", "th2", "lt1"}


def test_event_log_closed_after_run(tmp_path, fleet_net):
    net = fleet_net()
    assert cli.run(_argv(tmp_path), dial=net, sleep=lambda s: None) == 0
    net.join_all()

    (run_dir,) = tmp_path.iterdir()
    assert logging.getLogger(_file_logger_name(run_dir / "events.jsonl")).handlers == []


def test_unwritable_results_dir_does_not_mask_failure(tmp_path, fleet_net, capsys):
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("")
    net = fleet_net(th2={"status": "failed"})
    assert cli.run(_argv(blocker), dial=net, sleep=lambda s: None) == 1
    net.join_all()

    captured = capsys.readouterr()
    assert "th2" in captured.err
    assert "non-fatal" in captured.out
