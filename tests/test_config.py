# Tests for Settings (environment + .env loading, validation)

from pathlib import Path

import pytest

from lychee_lock.core.config import (
    DEFAULT_PBKDF2_ITERATIONS,
    MIN_PBKDF2_ITERATIONS,
    Settings,
)

ENV_VARS = (
    "LYCHEE_PBKDF2_ITERATIONS", "LYCHEE_TOTP_ISSUER", "LYCHEE_TOTP_WINDOW",
    "LYCHEE_REMOTE_BACKEND", "LYCHEE_SQLITE_PATH", "LYCHEE_POSTGREST_URL",
    "LYCHEE_POSTGREST_KEY", "LYCHEE_AUDIT_LOG_DIR",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Keep load_dotenv() from finding a stray .env in the repo
    monkeypatch.chdir(tmp_path)


class TestDefaults:
    def test_defaults(self):
        settings = Settings()
        assert settings.pbkdf2_iterations == DEFAULT_PBKDF2_ITERATIONS
        assert settings.totp_issuer == "LycheeLock"
        assert settings.totp_window == 1
        assert settings.remote_backend == "sqlite"
        assert settings.sqlite_path == Path("data/vaults.db")

    def test_key_hidden_from_repr(self):
        settings = Settings(postgrest_key="service-role-secret")
        assert "service-role-secret" not in repr(settings)


class TestFromEnv:
    def test_reads_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LYCHEE_PBKDF2_ITERATIONS", "750000")
        monkeypatch.setenv("LYCHEE_TOTP_ISSUER", "Acme Vault")
        monkeypatch.setenv("LYCHEE_TOTP_WINDOW", "2")
        monkeypatch.setenv("LYCHEE_REMOTE_BACKEND", "MEMORY")
        monkeypatch.setenv("LYCHEE_AUDIT_LOG_DIR", str(tmp_path / "logs"))

        settings = Settings.from_env()

        assert settings.pbkdf2_iterations == 750_000
        assert settings.totp_issuer == "Acme Vault"
        assert settings.totp_window == 2
        assert settings.remote_backend == "memory"
        assert settings.audit_log_dir == tmp_path / "logs"

    def test_reads_env_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / "vault.env"
        env_file.write_text(
            "LYCHEE_REMOTE_BACKEND=postgrest\n"
            "LYCHEE_POSTGREST_URL=https://db.example\n"
            "LYCHEE_POSTGREST_KEY=anon\n"
        )
        for name in ("LYCHEE_REMOTE_BACKEND", "LYCHEE_POSTGREST_URL", "LYCHEE_POSTGREST_KEY"):
            # Register for cleanup; load_dotenv writes straight to os.environ
            monkeypatch.setenv(name, "")
            monkeypatch.delenv(name)

        settings = Settings.from_env(env_file)

        assert settings.remote_backend == "postgrest"
        assert settings.postgrest_url == "https://db.example"
        assert settings.postgrest_key == "anon"

    def test_environment_wins_over_env_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / "vault.env"
        env_file.write_text("LYCHEE_TOTP_ISSUER=FromFile\n")
        monkeypatch.setenv("LYCHEE_TOTP_ISSUER", "FromEnv")

        assert Settings.from_env(env_file).totp_issuer == "FromEnv"

    def test_non_integer_rejected(self, monkeypatch):
        monkeypatch.setenv("LYCHEE_TOTP_WINDOW", "two")
        with pytest.raises(ValueError, match="LYCHEE_TOTP_WINDOW"):
            Settings.from_env()


class TestValidation:
    def test_iterations_floor(self):
        Settings(pbkdf2_iterations=MIN_PBKDF2_ITERATIONS)
        with pytest.raises(ValueError, match="pbkdf2_iterations"):
            Settings(pbkdf2_iterations=MIN_PBKDF2_ITERATIONS - 1)

    def test_negative_window(self):
        with pytest.raises(ValueError):
            Settings(totp_window=-1)

    @pytest.mark.parametrize("issuer", ["", "Bad:Issuer"])
    def test_bad_issuer(self, issuer):
        with pytest.raises(ValueError):
            Settings(totp_issuer=issuer)

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="remote_backend"):
            Settings(remote_backend="s3")

    def test_postgrest_requires_url(self):
        with pytest.raises(ValueError, match="LYCHEE_POSTGREST_URL"):
            Settings(remote_backend="postgrest")
