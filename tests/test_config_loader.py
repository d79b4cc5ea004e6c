import os

import pytest

from subtrack.config import load_config

ENV_NAMES = (
    "TELEGRAM_BOT_TOKEN",
    "BOT_TOKEN",
    "API_HOST",
    "API_PORT",
    "INIT_DATA_MAX_AGE_SEC",
    "CORS_ALLOW_ORIGIN",
)


@pytest.fixture(autouse=True)
def _clean_env():
    # load_dotenv writes os.environ directly, so restore it by hand.
    saved = {name: os.environ.pop(name) for name in ENV_NAMES if name in os.environ}
    yield
    for name in ENV_NAMES:
        os.environ.pop(name, None)
    os.environ.update(saved)


def test_load_config_reads_env_file(tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "\n".join(
            [
                'TELEGRAM_BOT_TOKEN="123456:secret-token"',
                "API_HOST=127.0.0.1",
                "API_PORT=9000",
                "INIT_DATA_MAX_AGE_SEC=86400",
                "CORS_ALLOW_ORIGIN=https://subs.example.com",
            ]
        ),
        encoding="utf-8",
    )

    config = load_config(str(env_file))

    assert config.bot_token == "123456:secret-token"
    assert config.api_host == "127.0.0.1"
    assert config.api_port == 9000
    assert config.init_data_max_age_sec == 86400
    assert config.cors_allow_origin == "https://subs.example.com"


def test_load_config_defaults(tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("BOT_TOKEN=fallback\nINIT_DATA_MAX_AGE_SEC=0\n", encoding="utf-8")

    config = load_config(str(env_file))

    assert config.bot_token == "fallback"
    assert config.api_host == "0.0.0.0"
    assert config.api_port == 8080
    assert config.init_data_max_age_sec is None
    assert config.cors_allow_origin == "*"


def test_missing_token_is_not_fatal(tmp_path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text("TELEGRAM_BOT_TOKEN=\n", encoding="utf-8")

    assert load_config(str(env_file)).bot_token is None


@pytest.mark.parametrize(
    "line, message",
    [
        ("API_PORT=http", "API_PORT must be an integer value"),
        ("API_PORT=70000", "API_PORT must be less than or equal to 65535"),
        ("INIT_DATA_MAX_AGE_SEC=-5", "INIT_DATA_MAX_AGE_SEC must be greater than or equal to 0"),
    ],
)
def test_invalid_integers_raise(tmp_path, line: str, message: str) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(line, encoding="utf-8")

    with pytest.raises(RuntimeError, match=message):
        load_config(str(env_file))
