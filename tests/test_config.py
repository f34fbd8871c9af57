import pytest

from src.coordinator.config import build_parser, config_from_args
from src.coordinator.errors import ConfigurationError


def _config(*argv):
    return config_from_args(build_parser().parse_args(["--target", "svc:80", *argv]))


def test_defaults_and_agent_lists():
    cfg = _config("--th-agents", "a, b", "--lt-agents", "c")
    assert cfg.experiment.th_agents == ("a", "b")
    assert cfg.experiment.lt_agents == ("c",)
    assert cfg.experiment.sym_agents == ()
    assert str(cfg.experiment.load_pattern) == "fixed:10000"
    assert cfg.target.com_proto == "TCP"


def test_private_key_from_environment(monkeypatch):
    monkeypatch.setenv("LOADFLEET_PRIVATE_KEY", "/keys/env_id")
    assert _config("--th-agents", "a").experiment.private_key == "/keys/env_id"
    assert _config("--th-agents", "a", "--private-key", "/k").experiment.private_key == "/k"


@pytest.mark.parametrize("argv,message", [
    ((), "No agents"),
    (("--th-agents", "a", "--lt-agents", "a"), "more than once"),
    (("--th-agents", "a", "--ci-size", "0"), "--ci-size"),
    (("--th-agents", "a", "--lt-rate", "-1"), "--lt-rate"),
    (("--th-agents", "a", "--agent-port", "70000"), "--agent-port"),
    (("--th-agents", "a", "--load-pattern", "burst:5"), "Unknown load pattern"),
    (("--sym-agents", "s", "--nic-ts"), "No interfaces"),
    (("--sym-agents", "s", "--nic-ts", "--if-names", "eth0,eth1", "--bind-to-nic"), "multiple NICs"),
])
def test_invalid_configurations(argv, message):
    with pytest.raises(ConfigurationError, match=message):
        _config(*argv)
