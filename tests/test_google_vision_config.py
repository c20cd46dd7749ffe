"""Tests for Google Cloud Vision configuration."""
import json
from unittest.mock import Mock, patch

import pytest

from config.google_vision_config import GoogleVisionConfig, GoogleVisionConfigError

FROM_FILE = 'config.google_vision_config.service_account.Credentials.from_service_account_file'


@pytest.fixture
def mock_env(mock_credentials):
    """Environment with test credentials and tuned client settings."""
    test_env = {
        'GOOGLE_APPLICATION_CREDENTIALS': mock_credentials,
        'GOOGLE_VISION_API_ENDPOINT': 'https://test-endpoint',
        'GOOGLE_VISION_TIMEOUT': '60',
        'GOOGLE_VISION_MAX_RETRIES': '5'
    }

    with pytest.MonkeyPatch().context() as mp:
        for key, value in test_env.items():
            mp.setenv(key, value)
        yield test_env


@pytest.fixture
def no_env():
    with pytest.MonkeyPatch().context() as mp:
        for key in ['GOOGLE_APPLICATION_CREDENTIALS', 'GOOGLE_VISION_API_ENDPOINT',
                    'GOOGLE_VISION_TIMEOUT', 'GOOGLE_VISION_MAX_RETRIES']:
            mp.delenv(key, raising=False)
        yield mp


def test_init_with_env(mock_env):
    """Test initialization with environment variables."""
    config = GoogleVisionConfig()

    assert config.credentials_path == mock_env['GOOGLE_APPLICATION_CREDENTIALS']
    assert config.api_endpoint == mock_env['GOOGLE_VISION_API_ENDPOINT']
    assert config.timeout == 60
    assert config.max_retries == 5


def test_init_defaults(no_env):
    """Test initialization with default values."""
    config = GoogleVisionConfig()

    assert config.credentials_path is None
    assert config.api_endpoint is None
    assert config.timeout == 30
    assert config.max_retries == 3


def test_explicit_path_wins(mock_env, tmp_path):
    other = tmp_path / "other.json"
    config = GoogleVisionConfig(credentials_path=str(other))
    assert config.credentials_path == str(other)
    assert config.is_configured is False


def test_is_configured(mock_env, no_env):
    assert GoogleVisionConfig(credentials_path=mock_env['GOOGLE_APPLICATION_CREDENTIALS']).is_configured
    assert GoogleVisionConfig().is_configured is False


def test_project_id(mock_env):
    assert GoogleVisionConfig().project_id == 'test-project'


def test_validate_success(mock_env):
    """Test successful validation."""
    config = GoogleVisionConfig()
    with patch(FROM_FILE, return_value=Mock()) as from_file:
        config.validate()

    from_file.assert_called_once_with(
        mock_env['GOOGLE_APPLICATION_CREDENTIALS'],
        scopes=GoogleVisionConfig.DEFAULT_SCOPES
    )
    assert config.get_status()['has_credentials'] is True


def test_validate_missing_credentials(no_env):
    """Test validation with missing credentials."""
    with pytest.raises(GoogleVisionConfigError) as exc_info:
        GoogleVisionConfig().validate()
    assert "credentials path not set" in str(exc_info.value)
    assert exc_info.value.details['error_type'] == 'missing_credentials_path'


def test_validate_invalid_credentials_path(no_env, tmp_path):
    """Test validation with non-existent credentials file."""
    config = GoogleVisionConfig(credentials_path=str(tmp_path / "nonexistent.json"))
    with pytest.raises(GoogleVisionConfigError) as exc_info:
        config.validate()
    assert exc_info.value.details['error_type'] == 'credentials_not_found'


def test_validate_invalid_json(no_env, tmp_path):
    creds = tmp_path / "broken.json"
    creds.write_text("{not json")
    with pytest.raises(GoogleVisionConfigError) as exc_info:
        GoogleVisionConfig(credentials_path=str(creds)).validate()
    assert exc_info.value.details['error_type'] == 'invalid_json'


def test_validate_missing_fields(no_env, tmp_path):
    creds = tmp_path / "partial.json"
    creds.write_text(json.dumps({'type': 'service_account', 'project_id': 'p'}))
    with pytest.raises(GoogleVisionConfigError) as exc_info:
        GoogleVisionConfig(credentials_path=str(creds)).validate()
    assert exc_info.value.details['missing_fields'] == ['private_key_id', 'private_key', 'client_email']


def test_validate_bad_key(mock_env):
    with patch(FROM_FILE, side_effect=ValueError("Could not deserialize key data")):
        with pytest.raises(GoogleVisionConfigError) as exc_info:
            GoogleVisionConfig().validate()
    assert exc_info.value.details['error_type'] == 'validation_error'


def test_validate_invalid_timeout(mock_env):
    """Test validation with invalid timeout."""
    with pytest.MonkeyPatch().context() as mp:
        mp.setenv('GOOGLE_VISION_TIMEOUT', '0')
        with pytest.raises(GoogleVisionConfigError) as exc_info:
            GoogleVisionConfig().validate()
    assert "Timeout must be positive" in str(exc_info.value)


def test_validate_invalid_max_retries(mock_env):
    """Test validation with invalid max retries."""
    with pytest.MonkeyPatch().context() as mp:
        mp.setenv('GOOGLE_VISION_MAX_RETRIES', '-1')
        with pytest.raises(GoogleVisionConfigError) as exc_info:
            GoogleVisionConfig().validate()
    assert "Max retries cannot be negative" in str(exc_info.value)


def test_create_client_with_credentials(mock_env):
    credentials = Mock()
    with patch(FROM_FILE, return_value=credentials), \
            patch('config.google_vision_config.vision.ImageAnnotatorClient') as client_cls:
        client = GoogleVisionConfig().create_client()

    assert client is client_cls.return_value
    client_cls.assert_called_once_with(
        credentials=credentials,
        client_options={'api_endpoint': 'https://test-endpoint'}
    )


def test_create_client_with_default_credentials(no_env):
    with patch('config.google_vision_config.vision.ImageAnnotatorClient') as client_cls:
        GoogleVisionConfig().create_client()
    client_cls.assert_called_once_with(client_options=None)


def test_get_status(mock_env):
    status = GoogleVisionConfig().get_status()
    assert status['is_configured'] is True
    assert status['project_id'] == 'test-project'
    assert status['has_credentials'] is False
    assert status['timeout'] == 60
    assert status['max_retries'] == 5
