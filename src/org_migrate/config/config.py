"""Configuration management for the organization migration tool."""

from typing import Optional, Dict, Any
from pathlib import Path
from urllib.parse import urlparse
import os

from pydantic import BaseModel, Field, validator
import yaml
from dotenv import load_dotenv

from ..models.membership import MembershipRole


class DirectoryServiceConfig(BaseModel):
    """Connection settings for the directory service admin API."""

    url: str = Field(..., description='Directory service URL')
    token: Optional[str] = Field(default=None, description='Admin API token')
    oauth_token: Optional[str] = Field(default=None, description='OAuth access token')
    api_version: str = Field(default='v1', description='Admin API version')
    timeout: int = Field(default=30, description='Request timeout in seconds')
    rate_limit_per_second: float = Field(
        default=10.0, description='API requests per second limit'
    )

    @validator('url')
    def validate_url(cls, v):
        """Validate directory service URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    @validator('oauth_token', always=True)
    def validate_auth_complete(cls, v, values):
        """Ensure at least one authentication method is provided."""
        token = values.get('token')
        if not token and not v:
            raise ValueError('Either token or oauth_token must be provided')
        return v

    @validator('rate_limit_per_second')
    def validate_rate_limit(cls, v):
        """Validate rate limit is positive."""
        if v <= 0:
            raise ValueError('Rate limit must be positive')
        return v


class OrganizationConfig(BaseModel):
    """Settings used to build organization URLs for redirects."""

    webapp_url: str = Field(
        default='https://app.example.com', description='Public web app URL'
    )
    subdomain_suffix: Optional[str] = Field(
        default=None,
        description='Domain that organization subdomains live under. '
        'Derived from webapp_url when not set.',
    )

    @validator('webapp_url')
    def validate_webapp_url(cls, v):
        """Validate web app URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('webapp_url must start with http:// or https://')
        return v.rstrip('/')

    @validator('subdomain_suffix')
    def validate_subdomain_suffix(cls, v):
        if v is not None:
            v = v.strip().strip('.')
            if not v:
                raise ValueError('subdomain_suffix must not be empty')
        return v

    @property
    def protocol(self) -> str:
        return urlparse(self.webapp_url).scheme

    def resolved_subdomain_suffix(self) -> str:
        """Return the configured suffix or derive it from the web app host.

        ``app.example.com`` yields ``example.com``; hosts with any other
        number of labels are used as they are.
        """
        if self.subdomain_suffix:
            return self.subdomain_suffix

        host = urlparse(self.webapp_url).netloc
        labels = host.split('.')
        if len(labels) == 3:
            return '.'.join(labels[1:])
        return host


class MigrationConfig(BaseModel):
    """Migration-specific configuration."""

    default_role: MembershipRole = Field(
        default=MembershipRole.MEMBER,
        description='Organization role given to migrated users',
    )
    default_accepted: bool = Field(
        default=True, description='Mark organization memberships as accepted'
    )
    max_workers: int = Field(
        default=1, description='Maximum concurrent requests when applying a plan'
    )
    continue_on_error: bool = Field(
        default=False, description='Keep applying a plan after a failed request'
    )

    @validator('default_role', pre=True)
    def validate_default_role(cls, v):
        """Accept role names in any case."""
        if isinstance(v, str):
            return v.upper()
        return v

    @validator('max_workers')
    def validate_max_workers(cls, v):
        """Validate max workers is positive."""
        if v <= 0:
            raise ValueError('Max workers must be positive')
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='INFO', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: Optional[str] = Field(default=None, description='Log format')

    @validator('level')
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class for the organization migration tool."""

    directory: DirectoryServiceConfig = Field(
        ..., description='Directory service connection'
    )
    organizations: OrganizationConfig = Field(
        default_factory=OrganizationConfig, description='Organization URL settings'
    )
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig, description='Migration settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    class Config:
        """Pydantic configuration."""

        extra = 'forbid'

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        if not isinstance(config_data, dict):
            raise ValueError(f'Configuration file is not a mapping: {config_path}')

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config_data = {
            'directory': {
                'url': os.getenv('DIRECTORY_URL'),
                'token': os.getenv('DIRECTORY_TOKEN'),
                'oauth_token': os.getenv('DIRECTORY_OAUTH_TOKEN'),
                'timeout': int(os.getenv('DIRECTORY_TIMEOUT', 30)),
            },
            'organizations': {
                'webapp_url': os.getenv('ORG_WEBAPP_URL'),
                'subdomain_suffix': os.getenv('ORG_SUBDOMAIN_SUFFIX'),
            },
            'migration': {
                'default_role': os.getenv('MIGRATION_DEFAULT_ROLE'),
                'max_workers': int(os.getenv('MIGRATION_MAX_WORKERS', 1)),
                'continue_on_error': os.getenv(
                    'MIGRATION_CONTINUE_ON_ERROR', 'false'
                ).lower()
                == 'true',
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL', 'INFO'),
                'file': os.getenv('LOG_FILE'),
            },
        }

        config_data = cls._remove_none_values(config_data)

        return cls(**config_data)

    @staticmethod
    def _remove_none_values(data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively remove None values from dictionary."""
        if isinstance(data, dict):
            return {
                k: Config._remove_none_values(v)
                for k, v in data.items()
                if v is not None
            }
        return data

    def to_file(self, config_path: str) -> None:
        """Save configuration to YAML file."""
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        data = self.dict()
        data['migration']['default_role'] = self.migration.default_role.value

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False, indent=2, sort_keys=False)

    @staticmethod
    def create_template(output_path: str) -> None:
        """Create a configuration template file."""
        template_config = {
            'directory': {
                'url': 'https://directory.example.com',
                'token': 'your-directory-admin-token',
                'api_version': 'v1',
                'timeout': 30,
                'rate_limit_per_second': 10.0,
            },
            'organizations': {
                'webapp_url': 'https://app.example.com',
            },
            'migration': {
                'default_role': 'MEMBER',
                'default_accepted': True,
                'max_workers': 1,
                'continue_on_error': False,
            },
            'logging': {
                'level': 'INFO',
                'file': 'org-migrate.log',
            },
        }

        config_file = Path(output_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                template_config, f, default_flow_style=False, indent=2, sort_keys=False
            )
