"""Repository context models."""

from dataclasses import dataclass, field


@dataclass
class RepoContext:
    """Context handed to AI analyzers for informed findings."""

    organization_id: str
    repository_id: str
    pr_number: int
    pr_sha: str
    pr_title: str | None = None
    branch: str | None = None
    changed_files: list[str] = field(default_factory=list)

    def to_prompt_context(self) -> str:
        """Format context for inclusion in analyzer prompts."""
        files = ", ".join(self.changed_files) if self.changed_files else "None"
        return f"""## Change Context
- Repository: {self.repository_id}
- PR #{self.pr_number}: {self.pr_title or 'Untitled'}
- Commit: {self.pr_sha}
- Branch: {self.branch or 'Unknown'}
- Changed files: {files}
"""
