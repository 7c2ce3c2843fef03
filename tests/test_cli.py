"""Tests for argument handling in sysstats.cli."""

from unittest.mock import MagicMock, patch

import pytest

from sysstats.cli import UsageError, build_parser, main, resolve_config
from sysstats.config import DEFAULT_CONFIG, Config
from sysstats.dispatcher import SpawnError


def _resolve(*argv: str, **settings: object) -> Config:
    args = build_parser().parse_intermixed_args(list(argv))
    return resolve_config(args, {**DEFAULT_CONFIG, **settings})


# ── resolve_config ────────────────────────────────────────────────────────


class TestResolveConfig:
    def test_defaults(self) -> None:
        assert _resolve() == Config(round_count=10, interval_seconds=1)

    def test_positional_values(self) -> None:
        config = _resolve("5", "2")
        assert config.round_count == 5
        assert config.interval_seconds == 2

    def test_flag_values(self) -> None:
        config = _resolve("--samples=3", "--tdelay", "0")
        assert (config.round_count, config.interval_seconds) == (3, 0)

    def test_flag_and_positional_agree(self) -> None:
        assert _resolve("--samples=4", "4").round_count == 4

    def test_conflicting_values(self) -> None:
        with pytest.raises(UsageError, match="should be consistent!"):
            _resolve("--samples=4", "5")

    def test_repeated_flag_conflict(self) -> None:
        with pytest.raises(UsageError, match="tdelay"):
            _resolve("--tdelay=1", "--tdelay=2")

    def test_too_many_positionals(self) -> None:
        with pytest.raises(UsageError, match="No more than 2"):
            _resolve("1", "2", "3")

    @pytest.mark.parametrize("argv", [["0"], ["--samples=-2"]])
    def test_non_positive_samples(self, argv: list[str]) -> None:
        with pytest.raises(UsageError, match="positive"):
            _resolve(*argv)

    def test_negative_delay(self) -> None:
        with pytest.raises(UsageError, match="negative"):
            _resolve("3", "-1")

    def test_section_flags(self) -> None:
        system = _resolve("--system")
        assert system.collect_memory_cpu and not system.collect_users
        user = _resolve("--user")
        assert user.collect_users and not user.collect_memory_cpu
        both = _resolve("--system", "--user")
        assert both.collect_memory_cpu and both.collect_users

    def test_file_settings_are_defaults(self) -> None:
        config = _resolve(samples=7, graphics=True)
        assert config.round_count == 7
        assert config.graphics
        assert _resolve("2", samples=7).round_count == 2


# ── main ──────────────────────────────────────────────────────────────────


@pytest.fixture
def no_config_file():
    with patch("sysstats.cli.load_config", return_value=dict(DEFAULT_CONFIG)) as mock_load:
        yield mock_load


class TestMain:
    def test_dump_config(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["--dump-config"])
        out = capsys.readouterr().out
        assert "samples = 10" in out
        assert "sequential = false" in out

    def test_unknown_argument_exits_zero(
        self, no_config_file: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["--bogus"])
        assert exc.value.code == 0
        assert capsys.readouterr().err.startswith("sysstats: ")

    def test_inconsistent_values_exit_zero(
        self, no_config_file: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc:
            main(["--samples=3", "4"])
        assert exc.value.code == 0
        assert 'The value given to "--samples=N" should be consistent!' in capsys.readouterr().err

    @patch("sysstats.cli.SignalController")
    @patch("sysstats.cli.Scheduler")
    def test_normal_run(
        self, mock_scheduler: MagicMock, mock_controller: MagicMock, no_config_file: MagicMock
    ) -> None:
        mock_scheduler.return_value.run.return_value = 0

        with pytest.raises(SystemExit) as exc:
            main(["--graphics", "3", "0"])

        assert exc.value.code == 0
        config = mock_scheduler.call_args.args[0]
        assert config == Config(round_count=3, interval_seconds=0, graphics=True)
        mock_controller.return_value.install.assert_called_once()
        mock_controller.return_value.restore.assert_called_once()

    @patch("sysstats.cli.SignalController")
    @patch("sysstats.cli.Scheduler")
    def test_spawn_failure_exits_one(
        self,
        mock_scheduler: MagicMock,
        mock_controller: MagicMock,
        no_config_file: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        mock_scheduler.return_value.run.side_effect = SpawnError("cpu: can't start new thread")

        with pytest.raises(SystemExit) as exc:
            main([])

        assert exc.value.code == 1
        assert "cannot start worker: cpu" in capsys.readouterr().err
        mock_controller.return_value.restore.assert_called_once()

    def test_passes_config_path(self, no_config_file: MagicMock) -> None:
        with patch("sysstats.cli.Scheduler") as mock_scheduler, patch("sysstats.cli.SignalController"):
            mock_scheduler.return_value.run.return_value = 0
            with pytest.raises(SystemExit):
                main(["--config", "/tmp/sysstats.toml"])
        assert str(no_config_file.call_args.args[0]) == "/tmp/sysstats.toml"
