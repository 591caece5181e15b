import django
from django.conf import settings

LDAP_SETTINGS = {
    "url": "ldap://localhost:389",
    "user": "cn=admin,dc=example,dc=com",
    "password": "admin",
    "use_starttls": False,
    "tls_verify": "never",
    "timeout": 15.0,
    "sizelimit": 1000,
    "follow_referrals": False,
}

# Configure Django settings before anything reads them
if not settings.configured:
    settings.configure(
        LDAP_SERVERS={
            "default": {
                "basedn": "dc=example,dc=com",
                "read": LDAP_SETTINGS,
                "write": LDAP_SETTINGS,
            },
            "no_read": {
                "basedn": "dc=example,dc=com",
            },
        }
    )
    django.setup()
