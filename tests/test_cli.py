import logging

import pytest
import yaml
from click.testing import CliRunner

from buildorch.cli import load_backend, main
from buildorch.config import ConfigError
from buildorch.schemas import NamedComponent


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def restore_logging():
    logger = logging.getLogger("buildorch")
    handlers, level = logger.handlers[:], logger.level
    yield
    logger.handlers = handlers
    logger.setLevel(level)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "build.yaml"
    path.write_text(yaml.dump({"backend": "mybackend:make"}))
    return path


@pytest.fixture
def backend(monkeypatch, make_local, make_env, fake_backend):
    """Install a backend factory serving a single package `app`."""
    app = make_local("app", exes=["app"])
    state = {"backend": fake_backend([app]), "locals": [app]}

    def factory(config, opts):
        env = make_env(state["locals"], config=config, opts=opts)
        return env, state["backend"].collaborators()

    monkeypatch.setattr("buildorch.cli.load_backend", lambda spec: factory)
    return state


def test_build_runs_plan(runner, config_file, backend):
    result = runner.invoke(main, ["--config", str(config_file), "build"])
    assert result.exit_code == 0, result.output
    assert "Build completed" in result.output
    backend["backend"].execute_plan.assert_called_once()


def test_build_dry_run(runner, config_file, backend):
    result = runner.invoke(main, ["--config", str(config_file), "build", "--dry-run"])
    assert result.exit_code == 0, result.output
    assert "Build completed" not in result.output
    backend["backend"].print_plan.assert_called_once()
    backend["backend"].execute_plan.assert_not_called()


def test_build_with_targets(runner, config_file, backend):
    result = runner.invoke(main, ["--config", str(config_file), "build", "app:exe:app"])
    assert result.exit_code == 0, result.output
    opts = backend["backend"].execute_plan.call_args.args[0]
    assert opts.targets == ("app:exe:app",)


def test_build_prefetch_flag(runner, config_file, backend):
    result = runner.invoke(main, ["--config", str(config_file), "build", "--prefetch"])
    assert result.exit_code == 0, result.output
    backend["backend"].pre_fetch.assert_called_once()


def test_build_unknown_target_fails(runner, config_file, backend):
    result = runner.invoke(main, ["--config", str(config_file), "build", "nope"])
    assert result.exit_code == 1
    assert "Build failed" in result.output
    assert "[S-3127]" in result.output


def test_build_failure_reported(runner, config_file, backend, make_local):
    backend["locals"] = [make_local("app", unbuildable=[NamedComponent.exe("app")])]
    result = runner.invoke(main, ["--config", str(config_file), "build"])
    assert result.exit_code == 1
    assert "[S-7086]" in result.output


def test_build_without_config(runner, tmp_path):
    result = runner.invoke(main, ["--config", str(tmp_path / "missing.yaml"), "build"])
    assert result.exit_code == 1
    assert "Config not loaded" in result.output


def test_build_without_backend(runner, tmp_path):
    path = tmp_path / "build.yaml"
    path.write_text(yaml.dump({"allow-locals": True}))
    result = runner.invoke(main, ["--config", str(path), "build"])
    assert result.exit_code == 1
    assert "No backend configured" in result.output


def test_query_scalar(runner, config_file, backend):
    result = runner.invoke(main, ["--config", str(config_file), "query", "locals", "app", "version"])
    assert result.exit_code == 0, result.output
    assert result.output == "0.1.0\n"


def test_query_whole_document(runner, config_file, backend):
    result = runner.invoke(main, ["--config", str(config_file), "query"])
    assert result.exit_code == 0, result.output
    document = yaml.safe_load(result.output)
    assert document["locals"]["app"]["path"] == "/work/app"


def test_query_bad_selector(runner, config_file, backend):
    result = runner.invoke(main, ["--config", str(config_file), "query", "locals", "bogus"])
    assert result.exit_code == 1
    assert "[S-4419]" in result.output
    assert "['bogus']" in result.output


def test_init_creates_config(runner):
    with runner.isolated_filesystem():
        result = runner.invoke(main, ["init"])
        assert result.exit_code == 0
        assert "Initialized buildorch config" in result.output

        with open("build.yaml") as f:
            cfg = yaml.safe_load(f)
        assert cfg["allow-locals"] is True
        assert cfg["build"] == {"split-objs": False, "prefetch": False}


def test_init_does_not_overwrite_without_force(runner):
    with runner.isolated_filesystem():
        with open("build.yaml", "w") as f:
            f.write("allow-locals: false\n")

        result = runner.invoke(main, ["init"])
        assert result.exit_code == 1
        assert "Config already exists" in result.output
        with open("build.yaml") as f:
            assert f.read() == "allow-locals: false\n"


def test_init_force_overwrites(runner):
    with runner.isolated_filesystem():
        with open("build.yaml", "w") as f:
            f.write("allow-locals: false\n")

        result = runner.invoke(main, ["init", "--force"])
        assert result.exit_code == 0
        with open("build.yaml") as f:
            assert yaml.safe_load(f)["allow-locals"] is True


def test_version(runner):
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_load_backend_resolves_attribute():
    from buildorch.build import run_build

    assert load_backend("buildorch.build:run_build") is run_build


def test_load_backend_missing_module():
    with pytest.raises(ConfigError, match="Cannot import backend module"):
        load_backend("no_such_module_xyz:make")


def test_load_backend_missing_attribute():
    with pytest.raises(ConfigError, match="is not a callable"):
        load_backend("buildorch.build:no_such_factory")
