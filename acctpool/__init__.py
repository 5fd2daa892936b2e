"""
acctpool - allocation and reclamation of pooled AWS developer accounts.

Accounts live under a payer organization. Free accounts sit in the payer's
root; claimed accounts carry ``owner``/``claimed`` tags and live in the payer's
claimed OU. This package finds, claims, lists and reclaims them.
"""

__version__ = "0.1.0"
__author__ = "acctpool maintainers"
