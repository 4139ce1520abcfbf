"""
API dependencies for dependency injection.
"""

from typing import Optional

from fastapi import Depends, Header, Request

from codeconnect.core.config import Settings, settings
from codeconnect.core.constants import TITLE_MODEL
from codeconnect.core.exceptions import AuthenticationError, AuthorizationError
from codeconnect.core.logging import bind_context, get_logger
from codeconnect.core.security import verify_api_key
from codeconnect.domain.user import User
from codeconnect.integrations import ChatBackendClient, GitHubClient, JiraClient, WatsonxClient
from codeconnect.repositories import (
    ChatRepository,
    FeedbackRepository,
    InMemoryChatRepository,
    InMemoryFeedbackRepository,
    InMemoryMessageRepository,
    InMemoryUserRepository,
    MessageRepository,
    MongoChatRepository,
    MongoDatabase,
    MongoFeedbackRepository,
    MongoMessageRepository,
    MongoUserRepository,
    TieredCache,
    UserRepository,
)
from codeconnect.services import (
    ChatService,
    DashboardService,
    FeedbackService,
    GitHubService,
    JiraService,
    ModelCatalog,
    TitleGenerator,
)

logger = get_logger(__name__)


class ServiceContainer:
    """
    Container for all application services.
    Provides singleton instances of services.
    """

    _instance: Optional["ServiceContainer"] = None

    def __init__(self, config: Optional[Settings] = None) -> None:
        self.config = config or settings
        self._initialized = False
        self._database: Optional[MongoDatabase] = None

    @classmethod
    def get_instance(cls) -> "ServiceContainer":
        """Get the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def initialize(self, in_memory: Optional[bool] = None) -> None:
        """
        Build repositories, clients and services.

        Args:
            in_memory: Use in-memory repositories instead of MongoDB;
                defaults to ``not settings.mongodb.enabled``
        """
        if self._initialized:
            return

        if in_memory is None:
            in_memory = not self.config.mongodb.enabled

        # Repositories
        if in_memory:
            self._database = None
            self._users: UserRepository = InMemoryUserRepository()
            self._messages: MessageRepository = InMemoryMessageRepository()
            self._feedbacks: FeedbackRepository = InMemoryFeedbackRepository()
            self._chats: ChatRepository = InMemoryChatRepository(self._messages, self._feedbacks)
        else:
            self._database = MongoDatabase(self.config.mongodb)
            self._users = MongoUserRepository(self._database)
            self._messages = MongoMessageRepository(self._database)
            self._feedbacks = MongoFeedbackRepository(self._database)
            self._chats = MongoChatRepository(self._database)

        # Outbound clients
        self._backend_client = ChatBackendClient(self.config.backend)
        self._jira_client = JiraClient(self.config.jira)
        self._github_client = GitHubClient(self.config.github)
        self._watsonx_client = WatsonxClient(self.config.watsonx)

        self._cache = TieredCache(self.config.cache)
        self._model_catalog = ModelCatalog(self.config.models)

        # Services
        self._jira_service = JiraService(self._jira_client, self.config.jira)
        self._chat_service = ChatService(
            chats=self._chats,
            messages=self._messages,
            users=self._users,
            backend=self._backend_client,
            title_generator=TitleGenerator(self._watsonx_client, TITLE_MODEL),
            models=self._model_catalog,
        )
        self._feedback_service = FeedbackService(self._feedbacks)
        self._github_service = GitHubService(
            self._github_client,
            self._cache,
            watsonx=self._watsonx_client,
            jira=self._jira_service,
        )
        self._dashboard_service = DashboardService(
            users=self._users,
            chats=self._chats,
            messages=self._messages,
            feedbacks=self._feedbacks,
        )

        self._initialized = True
        logger.info("Service container built", storage="memory" if in_memory else "mongodb")

    async def startup(self) -> None:
        self.initialize()
        if self._database is not None:
            await self._database.connect()

    async def shutdown(self) -> None:
        """Wait for background title jobs and release connections."""
        if not self._initialized:
            return
        await self._chat_service.wait_for_background()
        for client in (
            self._backend_client,
            self._jira_client,
            self._github_client,
            self._watsonx_client,
        ):
            await client.close()
        if self._database is not None:
            await self._database.close()

    def reset(self) -> None:
        """Drop every built instance; the next access rebuilds them."""
        self._initialized = False
        self._database = None

    @property
    def database(self) -> Optional[MongoDatabase]:
        self.initialize()
        return self._database

    @property
    def users(self) -> UserRepository:
        self.initialize()
        return self._users

    @property
    def chats(self) -> ChatRepository:
        self.initialize()
        return self._chats

    @property
    def messages(self) -> MessageRepository:
        self.initialize()
        return self._messages

    @property
    def feedbacks(self) -> FeedbackRepository:
        self.initialize()
        return self._feedbacks

    @property
    def backend_client(self) -> ChatBackendClient:
        self.initialize()
        return self._backend_client

    @property
    def cache(self) -> TieredCache:
        self.initialize()
        return self._cache

    @property
    def model_catalog(self) -> ModelCatalog:
        self.initialize()
        return self._model_catalog

    @property
    def chat_service(self) -> ChatService:
        self.initialize()
        return self._chat_service

    @property
    def feedback_service(self) -> FeedbackService:
        self.initialize()
        return self._feedback_service

    @property
    def jira_service(self) -> JiraService:
        self.initialize()
        return self._jira_service

    @property
    def github_service(self) -> GitHubService:
        self.initialize()
        return self._github_service

    @property
    def dashboard_service(self) -> DashboardService:
        self.initialize()
        return self._dashboard_service


# Singleton container instance
container = ServiceContainer.get_instance()


# Dependency functions for FastAPI
def get_chat_service() -> ChatService:
    return container.chat_service


def get_feedback_service() -> FeedbackService:
    return container.feedback_service


def get_jira_service() -> JiraService:
    return container.jira_service


def get_github_service() -> GitHubService:
    return container.github_service


def get_dashboard_service() -> DashboardService:
    return container.dashboard_service


def get_model_catalog() -> ModelCatalog:
    return container.model_catalog


async def get_current_user(
    request: Request,
    x_api_key: Optional[str] = Header(default=None, alias=settings.security.api_key_header),
) -> User:
    """
    Resolve the signed-in user from the headers set by the front-end.

    Raises:
        AuthenticationError: If the API key is wrong or no user email is sent
    """
    verify_api_key(x_api_key)

    email = request.headers.get(settings.security.user_header)
    if not email:
        raise AuthenticationError("Unauthorized")

    name = request.headers.get(settings.security.user_name_header)
    user = await container.users.get_or_create(email.strip().lower(), name)
    bind_context(user_id=user.id)
    return user


async def get_admin_user(user: User = Depends(get_current_user)) -> User:
    """Dashboard access is limited to admins."""
    if not user.is_admin:
        raise AuthorizationError("Admin access required")
    return user
