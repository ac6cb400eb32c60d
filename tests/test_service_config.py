import os

import pytest

from service_config import Settings, startup_warnings
from service_errors import ConfigurationError

GOOD_JWT = "eyJ" + "a" * 30 + "." + "b" * 30 + "." + "c" * 20


def test_defaults_from_empty_environment():
    settings = Settings.from_env({})

    assert settings.port == 3001
    assert settings.tasks_file == os.path.join("./data", "tasks.json")
    assert settings.chain_tasks_file == os.path.join("./data", "chain_tasks.json")
    assert settings.ai_model == "deepseek-chat"
    assert settings.pinata_api_version == "v1"
    assert settings.start_block is None
    assert settings.cors_origins == ["*"]
    assert settings.is_local_chain


def test_values_are_parsed_from_environment():
    settings = Settings.from_env({
        "PORT": "8080",
        "DATA_DIR": "/srv/n4y",
        "AI_TEMPERATURE": "0.2",
        "AI_EXTRA_HEADERS": '{"X-Org": "n4y"}',
        "PINATA_API_VERSION": "V3",
        "IPFS_GATEWAY": "https://gateway.pinata.cloud/",
        "START_BLOCK": "1200",
        "CORS_ORIGINS": "https://a.example, https://b.example",
        "NETWORK_RPC_URL": "https://sepolia.base.org",
    })

    assert settings.port == 8080
    assert settings.tasks_file == os.path.join("/srv/n4y", "tasks.json")
    assert settings.ai_temperature == 0.2
    assert settings.ai_extra_headers == {"X-Org": "n4y"}
    assert settings.pinata_api_version == "v3"
    assert settings.ipfs_gateway == "https://gateway.pinata.cloud"
    assert settings.start_block == 1200
    assert settings.cors_origins == ["https://a.example", "https://b.example"]
    assert not settings.is_local_chain


def test_invalid_number_is_a_configuration_error():
    with pytest.raises(ConfigurationError, match="PORT"):
        Settings.from_env({"PORT": "eighty"})


def test_bad_extra_headers_are_ignored():
    assert Settings.from_env({"AI_EXTRA_HEADERS": "{nope"}).ai_extra_headers == {}


def test_warnings_for_missing_credentials():
    warnings = startup_warnings(Settings())

    assert any("PINATA_JWT not set" in w for w in warnings)
    assert any("No completion API key" in w for w in warnings)
    assert any("PRIVATE_KEY not set" in w for w in warnings)


def test_warnings_for_malformed_jwt():
    warnings = startup_warnings(Settings(pinata_jwt="not-a-jwt", ai_api_key="k", private_key="0x1"))

    assert any("does not look like a JWT" in w for w in warnings)
    assert any("seems short" in w for w in warnings)


def test_no_warnings_when_fully_configured():
    assert startup_warnings(Settings(pinata_jwt=GOOD_JWT, ai_api_key="k", private_key="0x1")) == []


def test_invalid_start_block_is_a_configuration_error():
    with pytest.raises(ConfigurationError, match="START_BLOCK"):
        Settings.from_env({"START_BLOCK": "latest"})
