"""Organization URL helpers."""

from ..config.config import OrganizationConfig


def get_org_full_origin(org_slug: str, config: OrganizationConfig) -> str:
    """Return the origin an organization is served from.

    >>> get_org_full_origin('acme', OrganizationConfig(webapp_url='https://app.example.com'))
    'https://acme.example.com'
    """
    return f'{config.protocol}://{org_slug}.{config.resolved_subdomain_suffix()}'
