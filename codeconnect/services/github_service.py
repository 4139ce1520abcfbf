"""
GitHub service: cached repository reads and pull-request analytics.
"""

from __future__ import annotations

import asyncio
import json
import math
import re
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional, Union

from codeconnect.core.constants import ANALYTICS_MODEL, CacheTier
from codeconnect.core.exceptions import (
    CodeConnectError,
    ConfigurationError,
    ValidationError,
    WatsonxError,
)
from codeconnect.core.logging import get_logger
from codeconnect.domain.base import ensure_aware, utcnow
from codeconnect.integrations.github_client import GitHubClient
from codeconnect.integrations.watsonx_client import WatsonxClient
from codeconnect.repositories.cache_repo import TieredCache, detail_key, repo_key
from codeconnect.services.jira_service import (
    JiraService,
    extract_issue_references,
    format_issues_for_ai,
)

logger = get_logger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_UNAVAILABLE_MARKERS = ("503", "Service Unavailable", "unavailable")

SERVICE_NOTICE = "AI analysis temporarily unavailable - showing data-based insights"


# =============================================================================
# PR summary
# =============================================================================


def _round(value: float) -> int:
    """Round half up, matching how the dashboard front-end rounds."""
    return int(math.floor(value + 0.5))


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return ensure_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def summarize_pull_requests(
    prs: list[dict[str, Any]],
    user: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Compute the metrics sent to the model for PR analytics.

    ``prs`` are GitHub pull-request objects, optionally carrying
    ``repository: {name, language}`` and the ``changed_files``,
    ``additions`` and ``deletions`` counts of the detail endpoint.
    """
    now = now or utcnow()
    total = len(prs)

    created = [t for t in (_parse_time(pr.get("created_at")) for pr in prs) if t is not None]
    repositories: list[str] = []
    languages: list[str] = []
    for pr in prs:
        repository = pr.get("repository") or {}
        name, language = repository.get("name"), repository.get("language")
        if name and name not in repositories:
            repositories.append(name)
        if language and language not in languages:
            languages.append(language)

    merged = [pr for pr in prs if pr.get("merged_at")]
    files_changed = [pr.get("changed_files") or 0 for pr in prs]

    merge_durations = []
    for pr in merged:
        opened, closed = _parse_time(pr.get("created_at")), _parse_time(pr.get("merged_at"))
        if opened and closed:
            merge_durations.append((closed - opened).total_seconds())

    def average(key: str) -> int:
        return _round(sum(pr.get(key) or 0 for pr in prs) / total) if total else 0

    def created_since(days: int) -> int:
        cutoff = now - timedelta(days=days)
        return sum(
            1 for pr in prs
            if (opened := _parse_time(pr.get("created_at"))) is not None and opened > cutoff
        )

    return {
        "total_prs": total,
        "user": user or "User",
        "time_span": {
            "earliest_pr": min(created).strftime("%Y-%m-%d") if created else None,
            "latest_pr": max(created).strftime("%Y-%m-%d") if created else None,
        },
        "repositories": repositories,
        "languages": languages,
        "state_distribution": {
            "open": sum(1 for pr in prs if pr.get("state") == "open"),
            "merged": len(merged),
            "closed": sum(1 for pr in prs if pr.get("state") == "closed" and not pr.get("merged_at")),
        },
        "size_metrics": {
            "avg_files_changed": average("changed_files"),
            "avg_lines_added": average("additions"),
            "avg_lines_deleted": average("deletions"),
            "largest_pr": max(files_changed) if files_changed else 0,
            "smallest_pr": min(files_changed) if files_changed else 0,
        },
        "timing_metrics": {
            "avg_merge_time_days": (
                _round(sum(merge_durations) / len(merge_durations) / 86400) if merge_durations else 0
            ),
            "merge_success_rate": _round(len(merged) / total * 100) if total else 0,
        },
        "recent_activity": {
            "last_30_days": created_since(30),
            "last_7_days": created_since(7),
        },
        "pr_titles_sample": [pr.get("title") or "" for pr in prs[:10]],
        "description_quality": {
            "with_description": sum(1 for pr in prs if len(pr.get("body") or "") > 50),
            "total": total,
        },
    }


def build_analysis_prompt(summary: dict[str, Any], jira_context: str = "") -> str:
    span = summary["time_span"]
    states = summary["state_distribution"]
    size = summary["size_metrics"]
    timing = summary["timing_metrics"]
    recent = summary["recent_activity"]
    quality = summary["description_quality"]

    jira_section = ""
    if jira_context:
        jira_section = (
            "**JIRA CONTEXT:**\n"
            f"{jira_context}\n\n"
            "This JIRA context shows the types of issues being worked on, which can provide "
            "insights into the developer's work patterns, project involvement, and the "
            "complexity of tasks being handled.\n\n"
        )
    jira_hint = ". Consider the JIRA context to understand work types and project complexity" if jira_context else ""

    return f"""You are an expert software engineering analyst specializing in GitHub pull request patterns and developer productivity insights.

Analyze the following pull request data for developer "{summary['user']}" and provide actionable insights:

**PR SUMMARY DATA:**
- Total PRs: {summary['total_prs']}
- Time span: {span['earliest_pr']} to {span['latest_pr']}
- Repositories: {', '.join(summary['repositories'])}
- Languages: {', '.join(summary['languages'])}
- State distribution: {states['open']} open, {states['merged']} merged, {states['closed']} closed
- Average files changed per PR: {size['avg_files_changed']}
- Average lines added per PR: {size['avg_lines_added']}
- Average lines deleted per PR: {size['avg_lines_deleted']}
- Largest PR size: {size['largest_pr']} files
- Average merge time: {timing['avg_merge_time_days']} days
- Merge success rate: {timing['merge_success_rate']}%
- Recent activity: {recent['last_30_days']} PRs in last 30 days, {recent['last_7_days']} in last 7 days
- Description quality: {quality['with_description']}/{quality['total']} PRs have detailed descriptions
- Sample PR titles: {'; '.join(summary['pr_titles_sample'][:5])}

{jira_section}**INSTRUCTIONS:**
Provide a comprehensive analysis in the following JSON format. Be specific, actionable, and insightful. Focus on patterns, productivity metrics, and professional development opportunities{jira_hint}:

{{
  "pattern_analysis": {{
    "content": "A detailed 2-3 sentence analysis of the developer's PR patterns, including size, frequency, and scope insights."
  }},
  "strengths": ["List 3-5 specific strengths based on the data"],
  "improvement_areas": ["List 3-4 specific areas for improvement"],
  "recommendations": [
    {{
      "title": "Specific Action Title",
      "description": "Detailed recommendation with concrete steps based on the analysis"
    }}
  ]
}}

**IMPORTANT:**
- Base ALL insights on the actual data provided
- Be specific with numbers and patterns
- Return ONLY the JSON object, no additional text or formatting
"""


def parse_insights(response: str) -> dict[str, Any]:
    """
    Turn the model's reply into the insight cards shown on the dashboard.

    Raises:
        WatsonxError: If the reply is empty or holds no JSON object
    """
    if not response or not response.strip():
        raise WatsonxError("Empty response from AI model")

    match = _JSON_OBJECT_RE.search(response)
    try:
        parsed = json.loads(match.group(0) if match else response)
    except json.JSONDecodeError as e:
        raise WatsonxError("Invalid JSON response from AI model") from e
    if not isinstance(parsed, dict):
        raise WatsonxError("Invalid JSON response from AI model")

    strengths = parsed.get("strengths")
    improvements = parsed.get("improvement_areas")
    recommendations = parsed.get("recommendations")
    return {
        "pattern_analysis": {
            "title": "Pattern Analysis",
            "content": (parsed.get("pattern_analysis") or {}).get("content")
            or "Analysis of your PR patterns shows interesting development trends.",
            "type": "text",
        },
        "strengths": {
            "title": "Strengths",
            "content": strengths if isinstance(strengths, list) else ["Building good development practices"],
            "type": "list",
        },
        "improvement_areas": {
            "title": "Improvement Areas",
            "content": improvements if isinstance(improvements, list)
            else ["Continue current practices and explore new opportunities"],
            "type": "list",
        },
        "recommendations": recommendations[:4] if isinstance(recommendations, list) else [
            {
                "title": "Maintain Excellence",
                "description": "Continue with current development practices and explore new opportunities for growth.",
            }
        ],
    }


def fallback_insights(summary: dict[str, Any]) -> dict[str, Any]:
    """Data-only insights used while the model service is unavailable."""
    avg_size = summary["size_metrics"]["avg_files_changed"]
    merge_rate = summary["timing_metrics"]["merge_success_rate"]
    recent = summary["recent_activity"]["last_30_days"]
    total = summary["total_prs"]

    return {
        "pattern_analysis": {
            "title": "Pattern Analysis",
            "content": (
                f"Analysis of {total} PRs shows an average of {avg_size} files changed per PR "
                f"with a {merge_rate}% merge success rate. You've had {recent} PRs in the last "
                "30 days. AI-powered insights temporarily unavailable due to service maintenance."
            ),
            "type": "text",
        },
        "strengths": {
            "title": "Strengths (Data-Based)",
            "content": [
                "High PR success rate" if merge_rate >= 80 else "Active contribution pattern",
                "Well-sized PR changes" if avg_size <= 8 else "Comprehensive code contributions",
                "Consistent recent activity" if recent > 0 else "Established development history",
            ],
            "type": "list",
        },
        "improvement_areas": {
            "title": "Areas to Consider",
            "content": [
                "Consider smaller, focused PRs" if avg_size > 10 else "Maintain current PR sizing",
                "Focus on PR quality and testing" if merge_rate < 70 else "Continue current practices",
            ],
            "type": "list",
        },
        "recommendations": [
            {
                "title": "Service Notice",
                "description": (
                    "AI analysis service is temporarily unavailable. Basic insights are shown based "
                    "on your PR data. Please try again later for detailed AI-powered recommendations."
                ),
            },
            {
                "title": "Optimize PR Size",
                "description": "Consider breaking larger changes into smaller, focused PRs for better review efficiency.",
            }
            if avg_size > 10
            else {
                "title": "Maintain Current Approach",
                "description": "Your PR sizing looks good. Continue with current development practices.",
            },
        ],
    }


def is_service_unavailable(error: CodeConnectError) -> bool:
    if isinstance(error, ConfigurationError):
        return True
    if error.details.get("status_code") == 503:
        return True
    return any(marker in error.message for marker in _UNAVAILABLE_MARKERS)


# =============================================================================
# Service
# =============================================================================


class GitHubService:
    """
    Read-through cached access to the GitHub API.

    Concurrent requests for the same uncached key share one upstream call.
    """

    def __init__(
        self,
        client: GitHubClient,
        cache: TieredCache,
        watsonx: Optional[WatsonxClient] = None,
        jira: Optional[JiraService] = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.watsonx = watsonx
        self.jira = jira
        self._inflight: dict[str, asyncio.Future] = {}

    async def _cached(
        self,
        tier: CacheTier,
        key: str,
        factory: Callable[[], Awaitable[Any]],
    ) -> Any:
        cache = self.cache.tier(tier)
        value = cache.get(key)
        if value is not None:
            return value

        inflight_key = f"{tier.value}:{key}"
        future = self._inflight.get(inflight_key)
        if future is None:
            future = asyncio.ensure_future(factory())
            self._inflight[inflight_key] = future
            future.add_done_callback(lambda _: self._inflight.pop(inflight_key, None))

        value = await asyncio.shield(future)
        cache.set(key, value)
        return value

    async def list_repositories(self, owner: Optional[str] = None) -> list[dict[str, Any]]:
        key = f"repos:{owner or 'self'}"
        return await self._cached(CacheTier.REPOSITORY, key, self.client.list_repos)

    async def get_pr_details(self, owner: str, repo: str, number: int) -> dict[str, Any]:
        async def fetch() -> dict[str, Any]:
            pull, files = await asyncio.gather(
                self.client.get_pull(owner, repo, number),
                self.client.get_pull_files(owner, repo, number),
            )
            return {"pull": pull, "files": files}

        return await self._cached(CacheTier.PR, detail_key("pr", repo_key(owner, repo), number), fetch)

    async def get_commit_details(self, owner: str, repo: str, sha: str) -> dict[str, Any]:
        return await self._cached(
            CacheTier.COMMIT,
            detail_key("commit", repo_key(owner, repo), sha),
            lambda: self.client.get_commit(owner, repo, sha),
        )

    async def list_commits(
        self,
        owner: str,
        repo: str,
        per_page: int = 30,
        author: Optional[str] = None,
        sha: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        key = detail_key("commits", repo_key(owner, repo), f"{sha or 'default'}:{author or 'all'}:{per_page}")
        return await self._cached(
            CacheTier.REPOSITORY,
            key,
            lambda: self.client.list_commits(owner, repo, per_page=per_page, author=author, sha=sha),
        )

    async def list_pulls(
        self, owner: str, repo: str, state: str = "all", per_page: int = 30
    ) -> list[dict[str, Any]]:
        key = detail_key("pulls", repo_key(owner, repo), f"{state}:{per_page}")
        return await self._cached(
            CacheTier.REPOSITORY,
            key,
            lambda: self.client.list_pulls(owner, repo, state=state, per_page=per_page),
        )

    async def get_file_content(
        self, owner: str, repo: str, path: str, ref: Optional[str] = None
    ) -> dict[str, Any]:
        key = detail_key("file", repo_key(owner, repo), f"{path}@{ref or 'HEAD'}")
        return await self._cached(
            CacheTier.CONTENTS,
            key,
            lambda: self.client.get_file_content(owner, repo, path, ref=ref),
        )

    def invalidate(self, tier: Union[CacheTier, str, None] = None, pattern: Optional[str] = None) -> int:
        if tier is not None:
            try:
                tier = CacheTier(tier)
            except ValueError as e:
                raise ValidationError(f"Unknown cache tier: {tier}") from e
        return self.cache.invalidate(tier, pattern)

    def cache_stats(self) -> dict[str, dict[str, Any]]:
        return self.cache.get_stats()

    # -------------------------------------------------------------------------
    # Analytics
    # -------------------------------------------------------------------------

    async def _jira_context(self, prs: list[dict[str, Any]]) -> str:
        if self.jira is None or not self.jira.client.is_configured:
            return ""

        keys: list[str] = []
        for pr in prs:
            for text in (pr.get("title") or "", pr.get("body") or ""):
                for reference in extract_issue_references(text):
                    if reference.issue_key not in keys:
                        keys.append(reference.issue_key)
        if not keys:
            return ""

        try:
            issues = await self.jira.get_issues(keys)
        except CodeConnectError as e:
            logger.warning("Jira context unavailable", error=e.message, references=len(keys))
            return ""
        return format_issues_for_ai(issues)

    async def analyze_pull_requests(
        self,
        prs: Any,
        user: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """
        Summarize PRs and ask the model for insights.

        Returns:
            ``{"insights": ...}``, plus ``serviceNotice`` when data-based
            insights replace the model's

        Raises:
            ValidationError: If ``prs`` is not a list
            WatsonxError: If the model fails for a reason other than unavailability
        """
        if not isinstance(prs, list):
            raise ValidationError("Invalid PR data provided")

        summary = summarize_pull_requests(prs, user, now)
        jira_context = await self._jira_context(prs)
        prompt = build_analysis_prompt(summary, jira_context)

        try:
            if self.watsonx is None:
                raise ConfigurationError("watsonx client not available")
            response = await self.watsonx.generate(prompt, model=ANALYTICS_MODEL, min_new_tokens=200)
            insights = parse_insights(response)
        except CodeConnectError as e:
            if not is_service_unavailable(e):
                raise
            logger.warning("AI analysis unavailable, using data-based insights", error=e.message)
            return {"insights": fallback_insights(summary), "serviceNotice": SERVICE_NOTICE}

        logger.info("PR analytics generated", total_prs=summary["total_prs"], jira_context=bool(jira_context))
        return {"insights": insights}
