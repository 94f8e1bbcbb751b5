"""GitHub App backed package updater.

Resolves releases from private GitHub repositories for installed
WordPress plugins and themes and drives install/rollback operations.
"""

__version__ = "0.4.0"
