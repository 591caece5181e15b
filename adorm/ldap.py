# The directory client imports python-ldap through this module so that
# python-ldap-faker can patch ``adorm.ldap.initialize`` in the test suite.
import ldap
from ldap import *  # noqa: F403

__version__ = ldap.__version__
from ldap.dn import dn2str, escape_dn_chars, str2dn  # noqa: F401
