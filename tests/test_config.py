from infrastructure.config import DEFAULT_DB_DSN, DEFAULT_LLM_MODEL, DEFAULT_TIMEZONE, Settings


def test_defaults_when_environment_is_empty():
    settings = Settings.from_env({})

    assert settings.service_name == "order-entry"
    assert settings.db_dsn == DEFAULT_DB_DSN
    assert settings.llm_api_key is None
    assert settings.llm_model == DEFAULT_LLM_MODEL
    assert settings.llm_temperature == 0.3
    assert settings.llm_max_tokens == 1000
    assert settings.flush_delay_s == 0.5


def test_api_key_falls_back_to_provider_variables():
    assert Settings.from_env({"DASHSCOPE_API_KEY": "sk-ds"}).llm_api_key == "sk-ds"
    assert Settings.from_env({"OPENAI_API_KEY": "sk-oa"}).llm_api_key == "sk-oa"
    assert Settings.from_env({"APP__LLM_API_KEY": "sk-app", "OPENAI_API_KEY": "sk-oa"}).llm_api_key == "sk-app"


def test_invalid_numbers_fall_back_to_defaults():
    settings = Settings.from_env(
        {
            "APP__LLM_TEMPERATURE": "warm",
            "APP__LLM_MAX_TOKENS": "-5",
            "APP__LLM_TIMEOUT_S": "0",
            "APP__FLUSH_DELAY_S": "-1",
        }
    )

    assert settings.llm_temperature == 0.3
    assert settings.llm_max_tokens == 1000
    assert settings.llm_timeout_s == 30.0
    assert settings.flush_delay_s == 0.5


def test_log_level_is_upper_cased():
    assert Settings.from_env({"APP__LOG_LEVEL": "debug"}).log_level == "DEBUG"


def test_timezone_defaults_to_business_calendar_and_ignores_unknown_names():
    assert str(Settings.from_env({}).timezone) == DEFAULT_TIMEZONE
    assert str(Settings.from_env({"APP__TIMEZONE": "Europe/Berlin"}).timezone) == "Europe/Berlin"
    assert str(Settings.from_env({"APP__TIMEZONE": "Mars/Olympus"}).timezone) == DEFAULT_TIMEZONE
