"""
ISC-CodeConnect API.

Server side of the ISC-CodeConnect assistant: chat streaming, feedback,
Jira and GitHub integrations and admin dashboards.
"""

__version__ = "1.0.0"
