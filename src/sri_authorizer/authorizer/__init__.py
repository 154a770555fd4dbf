"""
Voucher authorization against the remote authority.
"""

from .sri_client import SriAuthorizationClient, parse_authorization_response
from .worker import AuthorizationWorker

__all__ = ["AuthorizationWorker", "SriAuthorizationClient", "parse_authorization_response"]
