"""
Tests for the command line entry point.
"""

from fiddler_receiver.cli import EXIT_CONFIG, create_parser, load_config, main


class TestCli:
    """Tests for the command line entry point."""

    def test_parser_defaults(self):
        args = create_parser().parse_args([])

        assert args.config is None
        assert args.once is False
        assert args.log_level == "INFO"
        assert args.log_format == "json"

    def test_invalid_config_exit_code(self, tmp_path):
        path = tmp_path / "fiddler.yaml"
        path.write_text("endpoint: ''\ntoken: ''\n")

        assert main(["--config", str(path), "--once", "--log-format", "text"]) == EXIT_CONFIG

    def test_missing_config_file_exit_code(self, tmp_path):
        assert main(["--config", str(tmp_path / "missing.yaml"), "--log-format", "text"]) == EXIT_CONFIG

    def test_load_config_from_yaml(self, tmp_path):
        path = tmp_path / "fiddler.yaml"
        path.write_text("endpoint: https://app.fiddler.ai\ntoken: test-token\n")

        config = load_config(create_parser().parse_args(["--config", str(path)]))

        assert config.endpoint == "https://app.fiddler.ai"
