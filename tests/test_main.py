import pytest

from tunnelhunter import main as cli
from tunnelhunter.core.errors import EgressDiscoveryError
from tunnelhunter.orchestrator import ScanSummary


def test_parser_flags():
    args = cli.build_parser().parse_args(["--start", "0x10", "--step", "4", "--random", "--threads", "8"])
    assert args.start == 16
    assert args.step == 4
    assert args.randomize is True
    assert args.threads == 8


def test_unset_flags_do_not_override_config(monkeypatch, tmp_path):
    monkeypatch.setenv("TUNNELHUNTER_THREADS", "5")
    args = cli.build_parser().parse_args(["--env-file", str(tmp_path / "none.env")])
    config = cli.load_config(args)
    assert config.get("threads") == 5
    assert config.get("randomize") is False


def test_negative_values_rejected():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["--step", "-1"])


@pytest.fixture
def quiet(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda *a, **k: None)
    monkeypatch.setattr(cli, "install_signal_handlers", lambda stop: None)


def test_config_error_exit_code(quiet, tmp_path):
    assert cli.main(["--step", "0", "--env-file", str(tmp_path / "none.env")]) == cli.EXIT_CONFIG


def test_egress_failure_exit_code(quiet, monkeypatch, tmp_path):
    class Failing:
        def __init__(self, *args, **kwargs):
            pass

        def run(self):
            raise EgressDiscoveryError("no interfaces")

    monkeypatch.setattr(cli, "ScanOrchestrator", Failing)
    assert cli.main(["--env-file", str(tmp_path / "none.env")]) == cli.EXIT_ENVIRONMENT


def test_successful_run_exit_code(quiet, monkeypatch, tmp_path):
    captured = {}

    class Finished:
        def __init__(self, config, **kwargs):
            captured["config"] = config

        def run(self):
            return ScanSummary(start=3, step=2, workers=1, produced=10)

    monkeypatch.setattr(cli, "ScanOrchestrator", Finished)
    code = cli.main(["--start", "3", "--step", "2", "--no-render", "--env-file", str(tmp_path / "none.env")])
    assert code == cli.EXIT_OK
    assert captured["config"].get("render_enabled") is False
    assert captured["config"].get("start") == 3


def test_unwritable_render_directory_exit_code(quiet, monkeypatch, tmp_path):
    blocker = tmp_path / "images"
    blocker.write_text("not a directory")
    monkeypatch.setenv("TUNNELHUNTER_IMAGES_DIR", str(blocker / "shots"))
    monkeypatch.setattr("tunnelhunter.orchestrator.resolve_egress_addresses", lambda: [])

    assert cli.main(["--limit", "1", "--env-file", str(tmp_path / "none.env")]) == cli.EXIT_CONFIG
