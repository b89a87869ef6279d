import hashlib
import hmac

import pytest

from app.core.config import Settings
from app.core.security_utils import InputValidator, WebhookSigner


@pytest.mark.unit
class TestSettings:

    def test_callback_url_derived_from_public_base(self):
        config = Settings(_env_file=None, PUBLIC_BASE_URL="api.example.com/", WEBHOOK_URL="")

        assert config.callback_url == "https://api.example.com/api/v1/webhook/processing-complete"

    def test_explicit_webhook_url_wins(self):
        config = Settings(_env_file=None, WEBHOOK_URL="https://hooks.example.com/done")

        assert config.callback_url == "https://hooks.example.com/done"

    def test_list_values_from_environment(self, monkeypatch):
        monkeypatch.setenv("BACKEND_CORS_ORIGINS", "http://localhost:3000, https://app.example.com")
        monkeypatch.setenv("EXTRA_SUPPORTED_DOMAINS", "Drive.Example.com,media.example.org")

        config = Settings(_env_file=None)

        assert [str(origin).rstrip("/") for origin in config.BACKEND_CORS_ORIGINS] == [
            "http://localhost:3000",
            "https://app.example.com",
        ]
        assert config.EXTRA_SUPPORTED_DOMAINS == ["drive.example.com", "media.example.org"]

    def test_remote_configured(self):
        assert not Settings(_env_file=None, REMOTE_PROCESSING_URL="").remote_configured
        assert Settings(_env_file=None, REMOTE_PROCESSING_URL="https://w.example.com").remote_configured
        assert not Settings(
            _env_file=None, REMOTE_PROCESSING_URL="https://w.example.com", REMOTE_PROCESSING_ENABLED=False
        ).remote_configured

    def test_configuration_warnings(self):
        config = Settings(
            _env_file=None,
            REMOTE_PROCESSING_URL="https://w.example.com",
            PROCESSING_SERVICE_TOKEN="",
            WEBHOOK_SECRET=""
        )

        warnings = config.configuration_warnings()

        assert any("PROCESSING_SERVICE_TOKEN" in w for w in warnings)
        assert any("WEBHOOK_SECRET" in w for w in warnings)


@pytest.mark.unit
class TestSecurityUtils:

    def test_signature_matches_hmac_sha256(self):
        body = b'{"jobId": "job-1", "status": "completed"}'
        expected = hmac.new(b"secret", body, hashlib.sha256).hexdigest()

        assert WebhookSigner("secret").sign(body) == f"sha256={expected}"

    def test_verify(self):
        signer = WebhookSigner("secret")
        body = b'{"a": 1}'

        assert signer.verify(body, signer.sign(body))
        assert not signer.verify(body, WebhookSigner("other").sign(body))
        assert not signer.verify(body, signer.sign(body)[len("sha256="):])
        assert not signer.verify(body, None)

    @pytest.mark.parametrize("job_id,valid", [
        ("3b1f4a9e-5c7d-4e2f-8a6b-9c0d1e2f3a4b", True),
        ("job_1.a", True),
        ("../etc", False),
        ("", False),
        ("x" * 129, False),
    ])
    def test_validate_job_id(self, job_id, valid):
        assert InputValidator.validate_job_id(job_id) is valid
