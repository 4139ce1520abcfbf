"""
System-wide constants for ISC-CodeConnect.
"""

from enum import Enum


# =============================================================================
# Enums
# =============================================================================


class MessageRole(str, Enum):
    """Message roles in a chat."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    DATA = "data"


class StreamEventType(str, Enum):
    """Client-bound event kinds of the chat stream."""

    PROGRESS = "progress"
    CONTENT = "content"
    CODE = "code"
    ERROR = "error"


class ChatVisibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    SHARED = "shared"


class VoteType(str, Enum):
    UP = "up"
    DOWN = "down"


class JiraCreationType(str, Enum):
    """How a Jira issue attached to a vote was created."""

    FEEDBACK = "feedback"
    ISSUE = "issue"
    SUBTASK = "subtask"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class CacheTier(str, Enum):
    """GitHub cache tiers, each with its own default TTL."""

    REPOSITORY = "repository"
    FILE = "file"
    CONTENTS = "contents"
    DEPENDENCY = "dependency"
    PR = "pr"
    COMMIT = "commit"


# =============================================================================
# API Constants
# =============================================================================

API_VERSION = "v1"
API_PREFIX = f"/api/{API_VERSION}"

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

# =============================================================================
# MongoDB Collections
# =============================================================================

USERS_COLLECTION = "users"
CHATS_COLLECTION = "chats"
MESSAGES_COLLECTION = "messages"
FEEDBACKS_COLLECTION = "feedbacks"
APPLICATION_FEEDBACKS_COLLECTION = "application_feedbacks"

# =============================================================================
# Models
# =============================================================================

DEFAULT_MODELS = [
    "ibm/granite-3-3-8b-instruct",
    "ibm/granite-3-2-8b-instruct",
    "meta-llama/llama-3-3-70b-instruct",
    "mistralai/mistral-large",
    "openai/gpt-oss-120b",
]
DEFAULT_MODEL = "ibm/granite-3-3-8b-instruct"

# Model used for title generation and PR insights
TITLE_MODEL = "ibm/granite-3-3-8b-instruct"
ANALYTICS_MODEL = "ibm/granite-3-2-8b-instruct"

# =============================================================================
# Chat
# =============================================================================

NEW_CHAT_TITLE = "New Chat"
TITLE_FALLBACK_LENGTH = 40
TITLE_MAX_LENGTH = 60

ANALYSIS_START_TAG = "<start analysis>"
ANALYSIS_END_TAGS = ("<end analysis>", "</start analysis>", "</end analysis>")

DEFAULT_CODE_LANGUAGE = "apex"

# =============================================================================
# Jira
# =============================================================================

JIRA_USER_AGENT = "ISC-Code-Connect-API/1.0"
JIRA_BATCH_SIZE = 5
JIRA_SUBTASK_FALLBACK_TYPE = "Sub-task"
JIRA_DEFAULT_ISSUE_TYPE = "Task"
JIRA_SUBTASK_LABELS = ("feedback", "usability-feedback")
JIRA_ISSUE_KEY_PATTERN = r"\b([A-Z]{2,10}-\d{1,6})\b"
JIRA_DESCRIPTION_PREVIEW = 200

# =============================================================================
# Dashboard
# =============================================================================

NOT_RATED = "Not Rated"
NOT_RATED_COLOR = "#6b7280"

# (lower bound, color), checked top-down
RATING_COLORS = (
    (90, "#22c55e"),
    (80, "#84cc16"),
    (70, "#86efac"),
    (60, "#fde047"),
    (50, "#fdba74"),
    (40, "#f97316"),
    (30, "#ef4444"),
    (20, "#dc2626"),
)
RATING_COLOR_FLOOR = "#7f1d1d"

POSITIVE_RATING_THRESHOLD = 60
ACTIVE_USER_DAYS = 30
TOP_CATEGORIES = 10

USERS_CSV_HEADER = (
    "User ID",
    "Name",
    "Email",
    "Last Login",
    "Created At",
    "Total Chats",
    "Total Messages",
    "Total Feedbacks",
    "Total App Feedbacks",
    "Average Rating",
    "Role",
    "Is Active",
    "Activity Score",
)
