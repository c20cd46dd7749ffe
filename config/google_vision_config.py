"""Google Cloud Vision OCR configuration."""

import os
import json
import logging
from typing import Optional, Dict, Any

from google.cloud import vision
from google.oauth2 import service_account

logger = logging.getLogger(__name__)


class GoogleVisionConfigError(Exception):
    """Base exception for Google Vision configuration errors."""
    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(message)
        self.details = details or {}


class GoogleVisionConfig:
    """Configuration for Google Cloud Vision OCR."""

    DEFAULT_SCOPES = ['https://www.googleapis.com/auth/cloud-vision']
    REQUIRED_CREDS_FIELDS = [
        'type', 'project_id', 'private_key_id',
        'private_key', 'client_email'
    ]

    def __init__(self, credentials_path: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            credentials_path: Optional path to credentials file.
                            If not provided, will use GOOGLE_APPLICATION_CREDENTIALS env var.
        """
        self.credentials_path = credentials_path or os.getenv('GOOGLE_APPLICATION_CREDENTIALS')
        self.api_endpoint: Optional[str] = os.getenv('GOOGLE_VISION_API_ENDPOINT')
        self.timeout: float = float(os.getenv('GOOGLE_VISION_TIMEOUT', '30'))
        self.max_retries: int = int(os.getenv('GOOGLE_VISION_MAX_RETRIES', '3'))
        self._credentials = None
        self._project_id = None

    @property
    def is_configured(self) -> bool:
        """Check if Google Vision is configured."""
        return bool(self.credentials_path and os.path.exists(self.credentials_path))

    @property
    def project_id(self) -> Optional[str]:
        """Get the configured project ID."""
        if not self._project_id and self.is_configured:
            try:
                with open(self.credentials_path) as f:
                    self._project_id = json.load(f).get('project_id')
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Could not read project id from credentials: {str(e)}")
        return self._project_id

    def validate(self) -> None:
        """
        Validate Google Vision configuration.

        Raises:
            GoogleVisionConfigError: If configuration is invalid
        """
        if self.timeout <= 0:
            raise GoogleVisionConfigError(
                "Timeout must be positive",
                {'error_type': 'invalid_timeout', 'timeout': self.timeout}
            )

        if self.max_retries < 0:
            raise GoogleVisionConfigError(
                "Max retries cannot be negative",
                {'error_type': 'invalid_retries', 'max_retries': self.max_retries}
            )

        if not self.credentials_path:
            raise GoogleVisionConfigError(
                "Google Cloud Vision credentials path not set",
                {'error_type': 'missing_credentials_path'}
            )

        if not os.path.exists(self.credentials_path):
            raise GoogleVisionConfigError(
                f"Credentials file not found: {self.credentials_path}",
                {'error_type': 'credentials_not_found'}
            )

        try:
            with open(self.credentials_path) as f:
                creds_data = json.load(f)
        except json.JSONDecodeError:
            raise GoogleVisionConfigError(
                "Invalid JSON in credentials file",
                {'error_type': 'invalid_json'}
            )

        missing = [f for f in self.REQUIRED_CREDS_FIELDS if f not in creds_data]
        if missing:
            raise GoogleVisionConfigError(
                "Missing required fields in credentials",
                {
                    'error_type': 'missing_fields',
                    'missing_fields': missing
                }
            )

        self._project_id = creds_data['project_id']

        try:
            self._credentials = service_account.Credentials.from_service_account_file(
                self.credentials_path,
                scopes=self.DEFAULT_SCOPES
            )
        except (ValueError, OSError) as e:
            raise GoogleVisionConfigError(
                f"Failed to validate credentials: {str(e)}",
                {
                    'error_type': 'validation_error',
                    'original_error': str(e)
                }
            )

        logger.info(f"Successfully validated credentials for project {self._project_id}")

    def create_client(self) -> vision.ImageAnnotatorClient:
        """
        Create a Vision client.

        Uses explicit service account credentials when configured and
        application default credentials otherwise.
        """
        client_options = {'api_endpoint': self.api_endpoint} if self.api_endpoint else None
        if self.credentials_path:
            if not self._credentials:
                self.validate()
            return vision.ImageAnnotatorClient(credentials=self._credentials, client_options=client_options)
        return vision.ImageAnnotatorClient(client_options=client_options)

    def get_status(self) -> Dict[str, Any]:
        """Get current configuration status."""
        return {
            'is_configured': self.is_configured,
            'project_id': self.project_id,
            'has_credentials': bool(self._credentials),
            'credentials_path': self.credentials_path,
            'timeout': self.timeout,
            'max_retries': self.max_retries
        }
