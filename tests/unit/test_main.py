from unittest.mock import patch

import yaml

from zwave_core import main as main_mod


def test_invalid_config_exits_before_any_transport(tmp_path, clean_env):
    cfg = tmp_path / "config.yaml"
    cfg.write_text(yaml.safe_dump({"devices": [{"name": "x", "topic": "a/x"}]}))
    with patch.object(main_mod, "start_bridge_controller") as start:
        assert main_mod.main(["--config", str(cfg)]) == 1
    start.assert_not_called()


def test_valid_config_starts_bridge(tmp_path, clean_env, device_config):
    cfg = tmp_path / "config.yaml"
    cfg.write_text(yaml.safe_dump({"devices": device_config, "retry_limit": 2}))
    with patch.object(main_mod, "start_bridge_controller") as start:
        assert main_mod.main(["--config", str(cfg), "--log-level", "WARNING"]) == 0
    settings = start.call_args.args[0]
    assert settings.retry_limit == 2
    assert [d.name for d in settings.devices] == ["alavalot", "terassivalo"]


def test_transport_failure_exits_non_zero(tmp_path, clean_env, device_config):
    cfg = tmp_path / "config.yaml"
    cfg.write_text(yaml.safe_dump({"devices": device_config}))
    with patch.object(
        main_mod, "start_bridge_controller", side_effect=OSError("refused")
    ):
        assert main_mod.main(["--config", str(cfg)]) == 1
