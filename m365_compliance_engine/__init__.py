"""
M365 Compliance Standards Engine
================================
Evaluates a tenant against declarative compliance standards and, per
standard, remediates drift, raises alerts, and records compliance reports
through the Exchange Online and Microsoft Graph admin APIs.
"""

__version__ = "1.0.0"
__author__ = "M365 Compliance Standards Engine"
