"""End-to-end runs of the setup pipeline against in-memory backends."""

import io
import threading

import pytest

from workstation_setup import main as main_mod
from workstation_setup.errors import ConfigMalformed
from workstation_setup.main import EXIT_CONFIG_ERROR, EXIT_FAILED_PACKAGES, EXIT_OK, exit_code_for, run
from workstation_setup.models import PackageKind
from workstation_setup.steps import step_50_install_extensions

from .fakes import FakeBackend, factory_for

CONFIG = {
    "config": {"retry_attempts": 2, "retry_delay": 0, "max_jobs": {"brew": 2, "cask": 1}},
    "categories": {"core": {"enabled": True}, "frontend": {"enabled": False}},
    "packages": {
        "core": {"brew": ["git", "node"], "cask": ["docker"]},
        "frontend": {"brew": ["node", "bun"]},
    },
}


@pytest.fixture
def backends():
    return {
        PackageKind.BREW: FakeBackend(kind=PackageKind.BREW, installed={"git"}),
        PackageKind.CASK: FakeBackend(kind=PackageKind.CASK),
    }


@pytest.fixture
def invoke(temp_dir, write_config, backends):
    def _invoke(config=CONFIG, **kwargs):
        kwargs.setdefault("start_at", "30_install_packages")
        return run(
            config_path=str(write_config(config)),
            state_path=str(temp_dir / "state.json"),
            log_path=str(temp_dir / "setup.log"),
            backend_factory=factory_for(backends),
            stream=io.StringIO(),
            **kwargs,
        )

    return _invoke


def test_installs_enabled_categories(invoke, backends):
    state = invoke()
    ledgers = state["execution"]["ledgers"]

    assert ledgers["brew"]["counts"] == {"already_installed": 1, "installed": 1, "failed": 0, "dry_run": 0}
    assert ledgers["cask"]["counts"]["installed"] == 1
    assert backends[PackageKind.BREW].install_calls == ["node"]
    assert "bun" not in backends[PackageKind.BREW].install_calls
    assert state["execution"]["run"]["ran_steps"][-1] == "90_summary"
    assert exit_code_for(state) == EXIT_OK


def test_summary_is_recorded(invoke):
    state = invoke()
    summary = state["execution"]["summary"]
    assert summary[-1] == "Total: 3 packages (2 installed, 1 skipped, 0 failed)"


def test_only_selects_a_disabled_category(invoke, backends):
    state = invoke(only="frontend")

    assert sorted(backends[PackageKind.BREW].install_calls) == ["bun", "node"]
    assert "cask" not in state["execution"]["ledgers"]


def test_failed_package_gives_exit_code_1(invoke, backends):
    backends[PackageKind.CASK].always_fail.add("docker")

    state = invoke()

    assert state["execution"]["ledgers"]["cask"]["failed"] == ["docker"]
    assert "30_install_packages" in state["execution"]["run"]["failed_steps"]
    assert exit_code_for(state) == EXIT_FAILED_PACKAGES
    assert backends[PackageKind.CASK].calls_for("docker") == 2


def test_dry_run_changes_nothing(invoke, backends):
    state = invoke(dry_run=True)

    assert state["execution"]["ledgers"]["brew"]["counts"]["dry_run"] == 2
    assert backends[PackageKind.BREW].install_calls == []
    assert backends[PackageKind.BREW].check_calls == []


def test_second_run_installs_nothing(invoke, backends):
    invoke()
    calls = list(backends[PackageKind.BREW].install_calls)

    state = invoke()

    assert backends[PackageKind.BREW].install_calls == calls
    assert state["execution"]["ledgers"]["brew"]["counts"]["already_installed"] == 2


def test_resume_skips_completed_steps(invoke, backends):
    backends[PackageKind.CASK].always_fail.add("docker")
    invoke()
    backends[PackageKind.CASK].always_fail.clear()

    state = invoke(resume=True)

    run_info = state["execution"]["run"]
    assert "30_install_packages" in run_info["ran_steps"]
    assert "40_install_pipx" in run_info["skipped_steps"]
    assert exit_code_for(state) == EXIT_OK


def test_cancelled_run_skips_installs_but_summarizes(invoke, backends):
    cancel = threading.Event()
    cancel.set()

    state = invoke(cancel=cancel)

    assert backends[PackageKind.BREW].install_calls == []
    assert state["execution"]["run"]["interrupted"] is True
    assert state["execution"]["run"]["ran_steps"] == ["90_summary"]


def test_extensions_per_available_editor(invoke, backends, monkeypatch):
    monkeypatch.setattr(step_50_install_extensions, "command_exists", lambda name: name == "code")
    code = FakeBackend(kind=PackageKind.EXTENSION, installed={"ms-python.python"})
    backends[(PackageKind.EXTENSION, "code")] = code
    config = dict(CONFIG, extensions={"core": ["ms-python.python", "esbenp.prettier-vscode"], "frontend": ["x.y"]})

    state = invoke(config=config)

    assert code.install_calls == ["esbenp.prettier-vscode"]
    assert state["execution"]["ledgers"]["extension:code"]["counts"]["already_installed"] == 1
    warnings = state["execution"]["warnings"]
    assert {"step": "50_install_extensions", "reason": "editor_missing", "editor": "cursor"} in warnings


def test_state_is_saved(invoke, temp_dir):
    invoke()
    assert (temp_dir / "state.json").exists()
    assert (temp_dir / "setup.log").exists()


def test_malformed_config_fails_before_any_step(invoke, backends):
    with pytest.raises(ConfigMalformed):
        invoke(config={"packages": {"core": {"brew": "git"}}})
    assert backends[PackageKind.BREW].check_calls == []


def test_exit_code_for_empty_state():
    assert exit_code_for({}) == EXIT_OK


def test_main_missing_config_exits_2(temp_dir):
    code = main_mod.main(
        [
            "--config",
            str(temp_dir / "missing.yaml"),
            "--state",
            str(temp_dir / "state.json"),
            "--log",
            str(temp_dir / "setup.log"),
        ]
    )
    assert code == EXIT_CONFIG_ERROR


def test_parser_rejects_non_positive_max_jobs():
    with pytest.raises(SystemExit):
        main_mod.build_parser().parse_args(["--max-jobs", "0"])


def _main_args(temp_dir, config_path, *extra):
    return [
        "--config",
        str(config_path),
        "--state",
        str(temp_dir / "state.json"),
        "--log",
        str(temp_dir / "setup.log"),
        *extra,
    ]


def test_main_bad_numeric_setting_exits_2(temp_dir, write_config):
    path = write_config(dict(CONFIG, config={"parallel_jobs": "many"}))
    assert main_mod.main(_main_args(temp_dir, path, "--dry-run")) == EXIT_CONFIG_ERROR


@pytest.mark.parametrize("flag", ["--start-at", "--stop-after"])
def test_main_unknown_step_is_a_usage_error(temp_dir, write_config, flag):
    path = write_config(CONFIG)
    with pytest.raises(SystemExit) as excinfo:
        main_mod.main(_main_args(temp_dir, path, "--dry-run", flag, "99_nope"))
    assert excinfo.value.code == EXIT_CONFIG_ERROR
    assert not (temp_dir / "state.json").exists()


def test_step_ids_match_pipeline_order():
    assert main_mod.STEP_IDS == [
        "10_preflight",
        "20_homebrew",
        "30_install_packages",
        "40_install_pipx",
        "50_install_extensions",
        "60_pull_models",
        "90_summary",
    ]
