"""Finding collector: runs analyzers per file in parallel, fail-secure."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from policy_gate.analyzers.base import AIAnalyzer, StaticAnalyzer, analyzer_name
from policy_gate.errors import AnalyzerError, AnalyzerTimeoutError, UsageLimitExceededError
from policy_gate.models.context import RepoContext
from policy_gate.models.findings import Finding
from policy_gate.models.review import ReviewFile

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorConfig:
    """Configuration for finding collection."""

    timeout_seconds: float = 120
    max_parallel_analyzers: int = 5


class FindingCollector:
    """Coordinates analyzers across the changed files of one change."""

    def __init__(
        self,
        static_analyzers: Sequence[StaticAnalyzer] = (),
        ai_analyzers: Sequence[AIAnalyzer] = (),
        timeout_seconds: float = 120,
        max_parallel_analyzers: int = 5,
        config: OrchestratorConfig | None = None,
    ) -> None:
        """Initialize the collector.

        Args:
            static_analyzers: Deterministic analyzers run on every file
            ai_analyzers: Model-backed analyzers run on every file after the static ones
            timeout_seconds: Maximum time for each analyzer call
            max_parallel_analyzers: Maximum files analyzed at once
            config: Optional full configuration (overrides other params)
        """
        self.static_analyzers = list(static_analyzers)
        self.ai_analyzers = list(ai_analyzers)
        self.config = config or OrchestratorConfig(
            timeout_seconds=timeout_seconds,
            max_parallel_analyzers=max_parallel_analyzers,
        )

    async def collect(self, files: list[ReviewFile], context: RepoContext) -> list[Finding]:
        """Run every analyzer on every file and merge the results.

        Files are analyzed concurrently; the merged list is always in
        file-list order (static findings, then AI findings, per file), no
        matter which file finished first. The first failure cancels the
        remaining work.

        Args:
            files: Files to analyze
            context: Repository context for AI analyzers

        Returns:
            All findings from all analyzers

        Raises:
            AnalyzerError: If any analyzer fails or times out
            UsageLimitExceededError: If an analyzer backend rejects the work for quota reasons
        """
        if not files:
            return []

        logger.info(
            f"Collecting findings for {len(files)} files with "
            f"{len(self.static_analyzers) + len(self.ai_analyzers)} analyzers"
        )

        semaphore = asyncio.Semaphore(self.config.max_parallel_analyzers)
        tasks = [
            asyncio.create_task(
                self._analyze_file(file, context, semaphore),
                name=f"analyze-{file.path}",
            )
            for file in files
        ]

        try:
            results = await asyncio.gather(*tasks)
        finally:
            # On failure or cancellation, in-flight analyzer calls are abandoned
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        findings = [finding for per_file in results for finding in per_file]
        logger.info(f"Collected {len(findings)} findings")
        return findings

    async def _analyze_file(
        self,
        file: ReviewFile,
        context: RepoContext,
        semaphore: asyncio.Semaphore,
    ) -> list[Finding]:
        async with semaphore:
            findings: list[Finding] = []
            for static in self.static_analyzers:
                findings.extend(
                    await self._run_with_timeout(
                        analyzer_name(static),
                        file.path,
                        static.analyze(file.path, file.content),
                    )
                )
            for ai in self.ai_analyzers:
                findings.extend(
                    await self._run_with_timeout(
                        analyzer_name(ai),
                        file.path,
                        ai.analyze(file.path, file.content, context),
                    )
                )
            return findings

    async def _run_with_timeout(self, name: str, file_path: str, call) -> list[Finding]:
        """Await one analyzer call with the configured timeout.

        Raises:
            AnalyzerTimeoutError: If the call exceeds the timeout
            AnalyzerError: If the call fails or returns something other than findings
        """
        try:
            result = await asyncio.wait_for(call, timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.warning(f"Analyzer {name} timed out on {file_path}")
            raise AnalyzerTimeoutError(
                f"Analyzer {name} timed out after {self.config.timeout_seconds}s on {file_path}",
                analyzer=name,
                file_path=file_path,
            ) from e
        except (AnalyzerError, UsageLimitExceededError):
            raise
        except Exception as e:
            logger.error(f"Analyzer {name} failed on {file_path}: {e}")
            raise AnalyzerError(
                f"Failed to analyze {file_path} with {name}: {e}",
                analyzer=name,
                file_path=file_path,
            ) from e

        if not isinstance(result, list) or not all(isinstance(f, Finding) for f in result):
            raise AnalyzerError(
                f"Analyzer {name} returned malformed findings for {file_path}",
                analyzer=name,
                file_path=file_path,
            )
        return result
