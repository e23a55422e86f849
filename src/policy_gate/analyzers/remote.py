"""HTTP client for a remote analyzer service (LLM gateway or scanner)."""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

import httpx

from policy_gate.analyzers.base import parse_findings
from policy_gate.errors import AnalyzerError, LimitStatus, UsageLimitExceededError
from policy_gate.models.context import RepoContext
from policy_gate.models.findings import Finding

logger = logging.getLogger(__name__)

ANALYZE_PATH = "/analyze"


@dataclass
class RemoteAnalyzerConfig:
    """Configuration for the remote analyzer client."""

    base_url: str
    api_key: str = ""
    model: str | None = None
    timeout: float = 120


def build_prompt(file_path: str, content: str, repo_context: RepoContext) -> str:
    """Instructions sent alongside the file for model-backed analyzers."""
    return f"""{repo_context.to_prompt_context()}
Analyze the following code for security vulnerabilities, quality issues, and potential bugs.

File: {file_path}

```
{content}
```

Return a JSON array of issues found, each with:
- ruleId: string (e.g., "security.sql-injection")
- severity: "critical" | "high" | "medium" | "low"
- file: string
- line: number
- message: string
- fix: string (actionable fix instruction)
- confidence: number (0-1)
"""


class RemoteAnalyzer:
    """AI analyzer backed by an HTTP service.

    The service answers POST /analyze with either {"findings": [...]} or
    {"content": "<model text containing a JSON array>"}.
    """

    name = "remote"

    def __init__(self, config: RemoteAnalyzerConfig, client: httpx.AsyncClient | None = None) -> None:
        """Initialize the client.

        Args:
            config: Configuration for the client
            client: Optional preconfigured httpx client (tests inject a mock transport)
        """
        self.config = config
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"

        self._client = client or httpx.AsyncClient(
            base_url=config.base_url,
            headers=headers,
            timeout=config.timeout,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "RemoteAnalyzer":
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def analyze(
        self, file_path: str, content: str, repo_context: RepoContext
    ) -> list[Finding]:
        """Analyze one file remotely.

        Raises:
            UsageLimitExceededError: On HTTP 429 (rate limited) or 402 (budget exhausted)
            AnalyzerError: On any other HTTP, network or parse failure
        """
        body = {
            "filePath": file_path,
            "content": content,
            "prompt": build_prompt(file_path, content, repo_context),
            "context": {
                "organizationId": repo_context.organization_id,
                "repositoryId": repo_context.repository_id,
                "prNumber": repo_context.pr_number,
                "prSha": repo_context.pr_sha,
            },
        }
        if self.config.model:
            body["model"] = self.config.model

        logger.debug(f"Requesting remote analysis for {file_path}")
        try:
            response = await self._client.post(ANALYZE_PATH, json=body)
        except httpx.HTTPError as e:
            raise AnalyzerError(
                f"Analyzer request failed for {file_path}: {e}",
                analyzer=self.name,
                file_path=file_path,
            ) from e

        if response.status_code == 429:
            raise UsageLimitExceededError(LimitStatus.RATE_LIMITED, "Analyzer rate limit exceeded")
        if response.status_code == 402:
            raise UsageLimitExceededError(LimitStatus.BUDGET_EXHAUSTED, "Analyzer budget exhausted")

        try:
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPStatusError, ValueError) as e:
            raise AnalyzerError(
                f"Analyzer returned an unusable response for {file_path}: {e}",
                analyzer=self.name,
                file_path=file_path,
            ) from e

        raw_findings = self._extract_findings(data, file_path)
        findings = parse_findings(raw_findings, analyzer=self.name)
        logger.info(f"Remote analyzer returned {len(findings)} findings for {file_path}")
        return findings

    def _extract_findings(self, data: Any, file_path: str) -> Any:
        if isinstance(data, dict) and "findings" in data:
            return data["findings"]
        if isinstance(data, dict) and isinstance(data.get("content"), str):
            try:
                return self._parse_json_response(data["content"])
            except json.JSONDecodeError as e:
                raise AnalyzerError(
                    f"Could not parse analyzer output for {file_path}: {e}",
                    analyzer=self.name,
                    file_path=file_path,
                ) from e
        return data

    def _parse_json_response(self, content: str) -> Any:
        """Parse JSON from model text, handling markdown code blocks."""
        content = content.strip()

        # Handle markdown code blocks
        if "```json" in content:
            match = re.search(r"```json\s*([\s\S]*?)```", content)
            if match:
                content = match.group(1).strip()
        elif "```" in content:
            match = re.search(r"```\s*([\s\S]*?)```", content)
            if match:
                content = match.group(1).strip()

        # Try to find the JSON array
        json_match = re.search(r"\[[\s\S]*\]", content)
        if json_match:
            content = json_match.group(0)

        return json.loads(content)
