"""
Outbound HTTP clients: Jira, GitHub, watsonx and the chat backend.
"""

from codeconnect.integrations.backend_client import ChatBackendClient
from codeconnect.integrations.base_client import BaseHTTPClient
from codeconnect.integrations.github_client import GitHubClient
from codeconnect.integrations.jira_client import JiraClient
from codeconnect.integrations.watsonx_client import WatsonxClient

__all__ = [
    "BaseHTTPClient",
    "ChatBackendClient",
    "GitHubClient",
    "JiraClient",
    "WatsonxClient",
]
