"""
API v1 routers.
"""

from codeconnect.api.v1 import chat, dashboard, feedback, github, health, jira, models

__all__ = ["chat", "dashboard", "feedback", "github", "health", "jira", "models"]
