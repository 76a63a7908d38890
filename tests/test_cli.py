"""Tests for the herald CLI."""

from unittest.mock import MagicMock, patch

import pytest
import yaml

from herald.cli import main
from herald.errors import InvalidAddressError
from herald.registry import ServiceAddress


@pytest.fixture
def mock_registry():
    """Patch RedisRegistry in the CLI module and return the instance mock."""
    with patch("herald.cli.RedisRegistry") as registry_cls:
        instance = MagicMock()
        registry_cls.return_value.__enter__.return_value = instance
        registry_cls.return_value.__exit__.return_value = False
        instance.registry_cls = registry_cls
        yield instance


@pytest.mark.unit
class TestCli:
    def test_no_command_prints_help(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 1
        assert "usage" in capsys.readouterr().out

    def test_config_shows_overrides(self, capsys):
        main(["config", "--cluster", "payments", "--db", "4"])
        data = yaml.safe_load(capsys.readouterr().out)
        assert data["cluster"] == "payments"
        assert data["db"] == 4

    def test_lookup_text(self, mock_registry, capsys):
        mock_registry.lookup.return_value = [ServiceAddress("10.0.0.1", 8091)]
        main(["lookup", "default"])
        assert capsys.readouterr().out.strip() == "10.0.0.1:8091"
        mock_registry.lookup.assert_called_once_with("default")

    def test_lookup_json_empty(self, mock_registry, capsys):
        mock_registry.lookup.return_value = []
        main(["lookup", "default", "--format", "json"])
        assert capsys.readouterr().out.strip() == "[]"

    def test_register_passes_config(self, mock_registry, capsys):
        mock_registry.register.return_value = ServiceAddress("10.0.0.1", 8091)
        main(["register", "10.0.0.1:8091", "--cluster", "payments"])
        mock_registry.register.assert_called_once_with("10.0.0.1:8091")
        config = mock_registry.registry_cls.call_args.args[0]
        assert config.cluster == "payments"
        assert "Registered 10.0.0.1:8091" in capsys.readouterr().err

    def test_unregister(self, mock_registry):
        mock_registry.unregister.return_value = ServiceAddress("10.0.0.1", 8091)
        main(["unregister", "10.0.0.1:8091"])
        mock_registry.unregister.assert_called_once_with("10.0.0.1:8091")

    def test_registry_errors_exit_nonzero(self, mock_registry, capsys):
        mock_registry.register.side_effect = InvalidAddressError("invalid port: 0")
        with pytest.raises(SystemExit) as exc_info:
            main(["register", "10.0.0.1:0"])
        assert exc_info.value.code == 1
        assert "invalid port" in capsys.readouterr().err
