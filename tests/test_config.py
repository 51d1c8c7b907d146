import pytest

from mqttbridge.config import INPUT_TOPIC, OUTPUT_TOPIC, load_config
from mqttbridge.core.errors import ConfigurationError

GOWON = ["--gowon-host", "http://gowon:8080"]


def test_defaults_apply_when_only_gowon_host_is_given():
    config = load_config(GOWON, environ={})

    assert config.http_port == 8080
    assert config.broker_host == "localhost"
    assert config.broker_port == 1883
    assert config.gowon_host == "http://gowon:8080"
    assert config.retry_interval == 5.0
    assert config.disconnect_timeout_ms == 1000
    assert config.connect_retry is True
    assert config.input_topic == INPUT_TOPIC
    assert config.output_topic == OUTPUT_TOPIC
    assert config.client_id == "gowon_mqttbroker"


def test_environment_variables_are_read():
    config = load_config(
        [],
        environ={
            "GOWON_HOST": "http://gowon:9000/",
            "GOWON_HTTP_PORT": "9090",
            "GOWON_BROKER": "mosquitto:1884",
            "GOWON_RETRY_INTERVAL": "2.5",
        },
    )

    assert config.gowon_host == "http://gowon:9000"
    assert config.http_port == 9090
    assert (config.broker_host, config.broker_port) == ("mosquitto", 1884)
    assert config.retry_interval == 2.5


def test_flags_take_precedence_over_environment():
    config = load_config(
        GOWON + ["-H", "7000", "--no-connect-retry"],
        environ={"GOWON_HTTP_PORT": "9090"},
    )

    assert config.http_port == 7000
    assert config.connect_retry is False


def test_yaml_file_is_loaded_below_environment(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "gowon_host: http://from-yaml:8080\n"
        "broker: yaml-broker:1883\n"
        "log_level: debug\n"
        "output_topic: /custom/output\n",
        encoding="utf-8",
    )

    config = load_config(
        ["--config", str(path)], environ={"GOWON_BROKER": "env-broker:1883"}
    )

    assert config.gowon_host == "http://from-yaml:8080"
    assert config.broker_host == "env-broker"
    assert config.log_level == "DEBUG"
    assert config.output_topic == "/custom/output"


def test_missing_yaml_file_is_a_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError):
        load_config(["--config", str(tmp_path / "missing.yaml")] + GOWON, environ={})


def test_malformed_yaml_file_is_a_configuration_error(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("broker: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_config(["--config", str(path)] + GOWON, environ={})


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["--gowon-host", "gowon:8080"],
        GOWON + ["-H", "0"],
        GOWON + ["-H", "65536"],
        GOWON + ["-H", "http"],
        GOWON + ["-b", "localhost"],
        GOWON + ["-b", "localhost:99999"],
        GOWON + ["-b", ":1883"],
        GOWON + ["--retry-interval", "0"],
        GOWON + ["--disconnect-timeout", "-1"],
        GOWON + ["--log-level", "verbose"],
    ],
)
def test_invalid_settings_are_rejected(argv):
    with pytest.raises(ConfigurationError):
        load_config(argv, environ={})


@pytest.mark.parametrize("value", ['"false"', "0", "1", "no_retry"])
def test_connect_retry_must_be_a_boolean(tmp_path, value):
    path = tmp_path / "config.yaml"
    path.write_text(f"connect_retry: {value}\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_config(["--config", str(path)] + GOWON, environ={})


def test_connect_retry_accepts_yaml_booleans(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("connect_retry: false\n", encoding="utf-8")

    config = load_config(["--config", str(path)] + GOWON, environ={})

    assert config.connect_retry is False
