"""
Unit tests for the Jira service, against a mocked Jira REST API.
"""

import base64
import json
from typing import Any, Callable, Optional

import httpx
import pytest
from httpx import AsyncClient

from codeconnect.core.config import JiraSettings
from codeconnect.core.exceptions import ConfigurationError, JiraIssueNotFoundError, ValidationError
from codeconnect.domain.jira import JiraIssue
from codeconnect.domain.user import User
from codeconnect.integrations.jira_client import JiraClient
from codeconnect.services.jira_service import (
    JiraService,
    extract_issue_references,
    format_issue_for_ai,
    subtask_search_jql,
)

JIRA_URL = "https://jira.example.com"

PARENT_ISSUE = {
    "id": "10001",
    "key": "ISCCC-1",
    "fields": {
        "summary": "Usability feedback for CodeConnect",
        "status": {"name": "In Progress", "statusCategory": {"key": "indeterminate"}},
        "issuetype": {"name": "Task"},
        "project": {"key": "ISCCC", "name": "ISC CodeConnect"},
        "labels": ["feedback"],
    },
}


class FakeJira:
    """Records requests and answers like a small Jira site."""

    def __init__(self, issue_types: Optional[Callable[[], httpx.Response]] = None) -> None:
        self.created: list[dict[str, Any]] = []
        self.uploads: list[str] = []
        self.issue_types = issue_types or (
            lambda: httpx.Response(
                200,
                json={
                    "values": [
                        {"id": "3", "name": "Task", "subtask": False},
                        {"id": "5", "name": "Feedback Sub-task", "subtask": True},
                    ]
                },
            )
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "POST" and path == "/rest/api/2/issue":
            self.created.append(json.loads(request.content)["fields"])
            return httpx.Response(201, json={"id": "10042", "key": "ISCCC-42", "self": f"{JIRA_URL}/x"})
        if request.method == "POST" and path.endswith("/attachments"):
            self.uploads.append(path)
            return httpx.Response(200, json=[{"filename": "screenshot.png"}])
        if path == "/rest/api/2/issue/createmeta/ISCCC/issuetypes":
            return self.issue_types()
        if path == "/rest/api/2/issue/ISCCC-1":
            return httpx.Response(200, json=PARENT_ISSUE)
        if path == "/rest/api/2/issue/ISCCC-1/comment" and request.method == "POST":
            body = json.loads(request.content)["body"]
            return httpx.Response(201, json={"id": "7", "body": body, "author": {"displayName": "Bot"}})
        if path == "/rest/api/2/search":
            return httpx.Response(200, json={"issues": [PARENT_ISSUE]})
        return httpx.Response(404, json={"errorMessages": ["Issue does not exist"]})


def build_service(fake: FakeJira, **overrides: Any) -> JiraService:
    config = JiraSettings(
        base_url=JIRA_URL,
        email="bot@example.com",
        api_token="secret-token",
        project_key="ISCCC",
        **overrides,
    )
    return JiraService(JiraClient(config, transport=httpx.MockTransport(fake)), config)


@pytest.fixture
def user() -> User:
    return User(id="a" * 24, email="dana@example.com", name="Dana Dev")


def attachment(name: str, payload: bytes) -> str:
    return json.dumps(
        {"fileName": name, "mimeType": "image/png", "content": base64.b64encode(payload).decode()}
    )


@pytest.mark.asyncio
async def test_create_issue_with_footer_and_attachments(user: User) -> None:
    fake = FakeJira()
    service = build_service(fake)

    created = await service.create_issue(
        user,
        summary="Answer used deprecated API",
        description="The generated trigger calls a retired method.",
        project_key="ISCCC",
        priority="High",
        attachments=[attachment("screenshot.png", b"\x89PNG"), "not json"],
    )

    assert created.issue_key == "ISCCC-42"
    assert created.issue_url == f"{JIRA_URL}/browse/ISCCC-42"
    assert created.attachments == ["screenshot.png", "Failed: unknown"]

    fields = fake.created[0]
    assert fields["issuetype"] == {"name": "Task"}
    assert fields["priority"] == {"name": "High"}
    assert fields["description"].endswith(
        "\n\n--- Reported by ---\nUser: Dana Dev\nEmail: dana@example.com"
    )
    assert fake.uploads == ["/rest/api/2/issue/ISCCC-42/attachments"]


@pytest.mark.asyncio
async def test_create_issue_requires_fields(user: User) -> None:
    service = build_service(FakeJira())
    with pytest.raises(ValidationError) as exc_info:
        await service.create_issue(user, summary="", description="", project_key="ISCCC")
    assert exc_info.value.message == "Missing required fields: summary, description"


@pytest.mark.asyncio
async def test_unconfigured_jira_raises_configuration_error(user: User) -> None:
    config = JiraSettings(base_url="", email="", api_token="")
    service = JiraService(JiraClient(config), config)

    with pytest.raises(ConfigurationError):
        await service.create_issue(user, summary="s", description="d", project_key="ISCCC")


@pytest.mark.asyncio
async def test_create_subtask_uses_project_subtask_type(user: User) -> None:
    fake = FakeJira()
    service = build_service(fake)

    subtask, parent = await service.create_subtask(
        user,
        parent_task_key="ISCCC-1",
        summary="Rating 75% for trigger answer",
        description="Mostly correct.",
        usability_percentage=75,
        chat_id="chat-9",
        message_id="msg-3",
        additional_details="Missed bulk handling.",
    )

    assert subtask.issue_key == "ISCCC-42"
    assert parent.summary == "Usability feedback for CodeConnect"

    fields = fake.created[0]
    assert fields["parent"] == {"key": "ISCCC-1"}
    assert fields["issuetype"] == {"name": "Feedback Sub-task"}
    assert fields["labels"] == ["feedback", "usability-feedback"]
    assert "Chat ID: chat-9\nMessage ID: msg-3\nParent Task: ISCCC-1" in fields["description"]
    assert "--- Additional Details ---\nMissed bulk handling." in fields["description"]
    assert "Usability Percentage: 75%" in fields["description"]


@pytest.mark.asyncio
async def test_subtask_type_falls_back_when_discovery_fails(user: User) -> None:
    fake = FakeJira(issue_types=lambda: httpx.Response(500, text="boom"))
    service = build_service(fake)

    await service.create_subtask(
        user,
        parent_task_key="ISCCC-1",
        summary="s",
        description="d",
        usability_percentage=40.5,
        chat_id="c",
        message_id="m",
    )

    assert fake.created[0]["issuetype"] == {"name": "Sub-task"}
    assert "Usability Percentage: 40.5%" in fake.created[0]["description"]


@pytest.mark.asyncio
@pytest.mark.parametrize("percentage", [-5, 0])
async def test_create_subtask_rejects_non_positive_percentage(user: User, percentage: float) -> None:
    fake = FakeJira()
    service = build_service(fake)
    with pytest.raises(ValidationError):
        await service.create_subtask(
            user,
            parent_task_key="ISCCC-1",
            summary="s",
            description="d",
            usability_percentage=percentage,
            chat_id="c",
            message_id="m",
        )
    assert fake.created == []


@pytest.mark.asyncio
async def test_create_subtask_missing_parent(user: User) -> None:
    service = build_service(FakeJira())
    with pytest.raises(JiraIssueNotFoundError):
        await service.create_subtask(
            user,
            parent_task_key="ISCCC-404",
            summary="s",
            description="d",
            usability_percentage=50,
            chat_id="c",
            message_id="m",
        )


@pytest.mark.asyncio
async def test_update_subtask_adds_comment() -> None:
    service = build_service(FakeJira())
    comment = await service.update_subtask("ISCCC-1", "Still failing", usability_percentage=60)
    assert comment.body == "Additional Feedback:\nStill failing\n\nUpdated Usability Percentage: 60%"

    with pytest.raises(JiraIssueNotFoundError):
        await service.update_subtask("ISCCC-404", "More")


@pytest.mark.asyncio
async def test_lookup_by_extracted_references() -> None:
    service = build_service(FakeJira())

    result = await service.lookup(
        extract_from={
            "title": "ISCCC-1 fix login",
            "description": "Relates to ISCCC-1 and ABC-22",
            "branchName": "feature/ABC-22",
        }
    )

    assert [r["issueKey"] for r in result["references"]] == ["ISCCC-1", "ABC-22"]
    assert [r["context"] for r in result["references"]] == ["title", "description"]
    assert result["found"] == 1
    assert result["total"] == 2

    single = await service.lookup(issue_key="ABC-22")
    assert single == {"issue": None, "found": False}

    with pytest.raises(ValidationError):
        await service.lookup()


@pytest.mark.asyncio
async def test_issue_types_and_subtask_search() -> None:
    service = build_service(FakeJira())

    types = await service.get_issue_types()
    assert types["projectKey"] == "ISCCC"
    assert [t["name"] for t in types["subtaskTypes"]] == ["Feedback Sub-task"]

    subtasks = await service.find_existing_subtasks("chat-9", "msg-3")
    assert [s.key for s in subtasks] == ["ISCCC-1"]


def test_helpers() -> None:
    assert extract_issue_references("no keys here") == []
    assert subtask_search_jql("ISCCC", "c1", "m1") == (
        'project = ISCCC AND issuetype = "Sub-task" AND description ~ "c1" OR description ~ "m1"'
    )

    issue = JiraIssue.from_api(
        {"id": "1", "key": "ISCCC-1", "fields": {**PARENT_ISSUE["fields"], "description": "d" * 250}}
    )
    text = format_issue_for_ai(issue)
    assert text.startswith("ISCCC-1: Usability feedback for CodeConnect | Status: In Progress | Type: Task")
    assert text.endswith("d" * 200 + "...")


@pytest.mark.asyncio
async def test_jira_endpoints_validate_before_calling_jira(
    async_client: AsyncClient, user_headers: dict[str, str]
) -> None:
    response = await async_client.post(
        "/api/v1/jira/issues", json={"summary": "Broken answer"}, headers=user_headers
    )
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Missing required fields: description, projectKey"

    lookup = await async_client.post("/api/v1/jira/lookup", json={}, headers=user_headers)
    assert lookup.status_code == 400
