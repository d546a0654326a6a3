import pytest

from spec_flow.secrets import SecretNotFoundError, clear_secrets_cache, get_secret, lookup_secret


@pytest.fixture(autouse=True)
def _fresh_cache(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    clear_secrets_cache()
    yield
    clear_secrets_cache()


def test_env_var_wins(tmp_secrets_dir, monkeypatch):
    (tmp_secrets_dir / "OPENAI_API_KEY").write_text("from-file", encoding="utf-8")
    monkeypatch.setenv("OPENAI_API_KEY", "from-env")
    assert get_secret("OPENAI_API_KEY") == "from-env"


def test_dotenv_then_file(tmp_secrets_dir):
    (tmp_secrets_dir / ".env").write_text("OPENAI_API_KEY=from-dotenv\n", encoding="utf-8")
    (tmp_secrets_dir / "OPENAI_API_KEY").write_text("from-file", encoding="utf-8")
    assert get_secret("OPENAI_API_KEY") == "from-dotenv"


def test_mounted_file(tmp_secrets_dir):
    (tmp_secrets_dir / "OPENAI_API_KEY").write_text("  from-file\n", encoding="utf-8")
    assert get_secret("OPENAI_API_KEY") == "from-file"


def test_missing_required(tmp_secrets_dir):
    assert get_secret("OPENAI_API_KEY") is None
    with pytest.raises(SecretNotFoundError):
        get_secret("OPENAI_API_KEY", required=True)


def test_lookup_reports_source_without_value(tmp_secrets_dir):
    (tmp_secrets_dir / "OPENAI_API_KEY").write_text("sk-test", encoding="utf-8")
    assert lookup_secret("OPENAI_API_KEY", tmp_secrets_dir) == ("sk-test", "file")
    assert lookup_secret("OTHER_KEY", tmp_secrets_dir) == (None, "missing")
