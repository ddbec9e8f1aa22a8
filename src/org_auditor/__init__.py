"""Org Auditor — GitHub organization membership audit.

Scans the commit history of an organization's repositories and recommends
which contributors to invite and which members to remove.
"""

__version__ = "0.1.0"
