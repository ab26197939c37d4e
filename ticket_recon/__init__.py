"""Tax-code ticket reconciliation tool.

Fetches sprint tickets from JIRA, extracts the tax-code table changes they
request, and checks them against SQL Server and Excel reference files.
"""

__version__ = "0.1.0"
