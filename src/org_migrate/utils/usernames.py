"""Username and slug helpers."""

import re

_NON_ALPHANUMERIC = re.compile(r'[\W_]+', re.UNICODE)


def slugify(value: str) -> str:
    """Lower-case ``value`` and collapse anything but letters and digits to dashes.

    >>> slugify('  Jane.Doe+test ')
    'jane-doe-test'
    >>> slugify('Józef_Łoś')
    'józef-łoś'
    """
    return _NON_ALPHANUMERIC.sub('-', value.strip().lower()).strip('-')


def get_org_username_from_email(email: str, auto_accept_email_domain: str) -> str:
    """Derive an organization username from an email address.

    Users whose email belongs to the organization's auto-accept domain get
    their local part; everyone else gets the first label of their domain
    appended so usernames from different companies do not collide.

    >>> get_org_username_from_email('jane@acme.com', 'acme.com')
    'jane'
    >>> get_org_username_from_email('jane@gmail.com', 'acme.com')
    'jane-gmail'
    """
    local, _, domain = email.partition('@')
    if domain == auto_accept_email_domain:
        return slugify(local)
    return slugify(f'{local}-{domain.split(".")[0]}')
