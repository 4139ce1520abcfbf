"""
Business logic layer.
"""

from codeconnect.services.chat_service import ChatService, QueryContext, QueryResult
from codeconnect.services.dashboard_service import DashboardService
from codeconnect.services.feedback_service import FeedbackService
from codeconnect.services.github_service import GitHubService
from codeconnect.services.jira_service import JiraService
from codeconnect.services.model_catalog import ModelCatalog
from codeconnect.services.stream_parser import AnalysisTagFilter, MessageAssembler, SSEDecoder
from codeconnect.services.title_generator import TitleGenerator

__all__ = [
    "AnalysisTagFilter",
    "ChatService",
    "DashboardService",
    "FeedbackService",
    "GitHubService",
    "JiraService",
    "MessageAssembler",
    "ModelCatalog",
    "QueryContext",
    "QueryResult",
    "SSEDecoder",
    "TitleGenerator",
]
