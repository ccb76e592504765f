"""Factory classes for creating AI generation services."""
from abc import ABC, abstractmethod
from typing import List, Optional

import google.generativeai as genai
import httpx
from pydantic import BaseModel, Field, ValidationError
from pydantic_ai import Agent

from .exceptions import GenerationError, SummaryError
from .models import (
    CommitMessageBatch,
    CommitMessageBatchResult,
    ExecutiveSummaryInput,
    ExecutiveSummaryResult,
    GeneratedCommitMessage,
    SummaryMetadata,
    SummaryTheme,
    TokenUsage,
)
from .prompts import COMMIT_MESSAGE_BATCH_PROMPT, EXECUTIVE_SUMMARY_PROMPT
from .services import GenerationService

OLLAMA_BASE_URL = "http://localhost:11434"


class CommitMessageAnswer(BaseModel):
    """Structured answer expected from the model for a commit message batch."""

    results: List[GeneratedCommitMessage] = Field(default_factory=list)


class SummaryAnswer(BaseModel):
    """Structured answer expected from the model for an executive summary."""

    summary: str
    risk_level: Optional[str] = None
    themes: List[SummaryTheme] = Field(default_factory=list)
    suggested_actions: List[str] = Field(default_factory=list)


def build_commit_prompt(batch: CommitMessageBatch) -> str:
    style = batch.style_guide
    sections = []
    for repo in batch.repositories:
        recent = "\n".join(f"- {subject}" for subject in repo.recent_commits) or "- (none)"
        sections.append(
            f"### Repository: {repo.name}\n"
            f"Path: {repo.path}\n"
            f"Context: {repo.context}\n"
            f"Recent commits:\n{recent}\n"
            f"Changes:\n{repo.diff}"
        )

    return f"""Generate one commit message per repository below.

Global context:
{batch.global_context}

Style guide:
- Format: {style.format}
- Maximum subject length: {style.max_length}
- Include scope: {'yes' if style.include_scope else 'no'}
- Include body: {'yes' if style.include_body else 'no'}
{'- Look for relationships between the repositories and mention them' if batch.analyze_relationships else ''}

{chr(10).join(sections)}"""


def build_summary_prompt(summary_input: ExecutiveSummaryInput) -> str:
    entries = []
    for item in summary_input.commit_messages:
        stats = item.stats
        entries.append(
            f"### {item.repository} ({stats.files_changed} files, "
            f"+{stats.additions} / -{stats.deletions})\n{item.message}"
        )

    return f"""Summarize the following commits for a {summary_input.audience}.

Maximum length: {summary_input.max_length} words
Focus areas: {', '.join(summary_input.focus_areas)}
Include risk assessment: {'yes' if summary_input.include_risk_assessment else 'no'}
Include recommendations: {'yes' if summary_input.include_recommendations else 'no'}

{chr(10).join(entries)}"""


def _output_of(result):
    # Handle different result structures across pydantic-ai versions
    if hasattr(result, "output"):
        return result.output
    if hasattr(result, "data"):
        return result.data
    return result


def _token_usage(result) -> Optional[TokenUsage]:
    usage_fn = getattr(result, "usage", None)
    if not callable(usage_fn):
        return None
    try:
        usage = usage_fn()
    except Exception:
        return None
    input_tokens = getattr(usage, "input_tokens", None) or getattr(usage, "request_tokens", None) or 0
    output_tokens = getattr(usage, "output_tokens", None) or getattr(usage, "response_tokens", None) or 0
    return TokenUsage(input_tokens=int(input_tokens), output_tokens=int(output_tokens))


class AgentGenerationService(GenerationService):
    """Generation service backed by pydantic-ai agents.

    Agents are created on first use so that constructing the service does not
    require provider credentials.
    """

    def __init__(
        self,
        model: str,
        commit_agent: Optional[Agent] = None,
        summary_agent: Optional[Agent] = None,
    ):
        self.model = model
        self._commit_agent = commit_agent
        self._summary_agent = summary_agent

    @property
    def commit_agent(self) -> Agent:
        if self._commit_agent is None:
            self._commit_agent = Agent(
                model=self.model,
                output_type=CommitMessageAnswer,
                system_prompt=COMMIT_MESSAGE_BATCH_PROMPT,
            )
        return self._commit_agent

    @property
    def summary_agent(self) -> Agent:
        if self._summary_agent is None:
            self._summary_agent = Agent(
                model=self.model,
                output_type=SummaryAnswer,
                system_prompt=EXECUTIVE_SUMMARY_PROMPT,
            )
        return self._summary_agent

    async def generate_commit_messages(self, batch: CommitMessageBatch) -> CommitMessageBatchResult:
        result = await self.commit_agent.run(build_commit_prompt(batch))
        answer = _output_of(result)
        if isinstance(answer, dict):
            answer = CommitMessageAnswer(**answer)
        if not isinstance(answer, CommitMessageAnswer):
            raise GenerationError(f"Unexpected answer from {self.model}: {type(answer).__name__}")
        return CommitMessageBatchResult(results=answer.results, token_usage=_token_usage(result))

    async def generate_executive_summary(self, summary_input: ExecutiveSummaryInput) -> ExecutiveSummaryResult:
        result = await self.summary_agent.run(build_summary_prompt(summary_input))
        answer = _output_of(result)
        if isinstance(answer, dict):
            answer = SummaryAnswer(**answer)
        if not isinstance(answer, SummaryAnswer):
            raise SummaryError(f"Unexpected answer from {self.model}: {type(answer).__name__}")
        return ExecutiveSummaryResult(
            success=True,
            summary=answer.summary,
            metadata=SummaryMetadata(
                repository_count=len(summary_input.commit_messages),
                total_changes=sum(m.stats.files_changed for m in summary_input.commit_messages),
                themes=answer.themes,
                risk_level=answer.risk_level,
                suggested_actions=answer.suggested_actions,
            ),
        )


class OllamaGenerationService(GenerationService):
    """Generation service talking to a local Ollama server over HTTP."""

    def __init__(self, model_name: str, base_url: str = OLLAMA_BASE_URL, timeout: float = 600.0):
        self.model_name = model_name
        self.base_url = base_url
        self.timeout = timeout

    async def _chat(self, system_prompt: str, prompt: str, json_format: bool = False) -> str:
        url = f"{self.base_url}/api/chat"
        payload = {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "stream": False,
        }
        if json_format:
            payload["format"] = "json"

        async with httpx.AsyncClient() as client:
            response = await client.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            result = response.json()
            return result.get("message", {}).get("content", "")

    async def generate_commit_messages(self, batch: CommitMessageBatch) -> CommitMessageBatchResult:
        prompt = (
            build_commit_prompt(batch)
            + '\n\nAnswer with JSON: {"results": [{"repository_name": ..., '
            '"repository_path": ..., "success": true, "message": ...}]}'
        )
        try:
            content = await self._chat(COMMIT_MESSAGE_BATCH_PROMPT, prompt, json_format=True)
        except httpx.HTTPError as e:
            raise GenerationError(f"Ollama API error: {str(e)}") from e
        if not content.strip():
            raise GenerationError("Ollama returned an empty response")
        try:
            answer = CommitMessageAnswer.model_validate_json(content)
        except ValidationError as e:
            raise GenerationError(f"Ollama returned malformed commit messages: {e}") from e
        return CommitMessageBatchResult(results=answer.results)

    async def generate_executive_summary(self, summary_input: ExecutiveSummaryInput) -> ExecutiveSummaryResult:
        try:
            content = await self._chat(EXECUTIVE_SUMMARY_PROMPT, build_summary_prompt(summary_input))
        except httpx.HTTPError as e:
            raise SummaryError(f"Ollama API error: {str(e)}") from e
        if not content.strip():
            return ExecutiveSummaryResult(success=False, error="Ollama returned an empty response")
        return ExecutiveSummaryResult(
            success=True,
            summary=content.strip(),
            metadata=SummaryMetadata(repository_count=len(summary_input.commit_messages)),
        )


class AgentFactory(ABC):
    """Abstract factory for creating generation services."""

    @abstractmethod
    def create_generation_service(self) -> GenerationService:
        """Create the service used for commit messages and summaries."""
        pass


class ClaudeAgentFactory(AgentFactory):
    """Factory for creating Claude-based agents."""

    def __init__(self, model: str = 'claude-3-5-sonnet-latest'):
        self.model = model

    def create_generation_service(self) -> GenerationService:
        model = self.model if self.model.startswith("anthropic:") else f"anthropic:{self.model}"
        return AgentGenerationService(model)


class GeminiAgentFactory(AgentFactory):
    """Factory for creating Google Gemini-based agents."""

    def __init__(self, model: str = 'gemini-1.5-pro', api_key: str = None):
        self.model = model
        if api_key:
            genai.configure(api_key=api_key)

    def create_generation_service(self) -> GenerationService:
        model = self.model.replace("google:", "", 1)
        if not model.startswith("google-gla:"):
            model = f"google-gla:{model}"
        return AgentGenerationService(model)


class OllamaAgentFactory(AgentFactory):
    """Factory for models served by a local Ollama instance."""

    def __init__(self, model: str = 'qwen2.5-coder:7b', base_url: str = OLLAMA_BASE_URL):
        self.model = model
        self.base_url = base_url

    def create_generation_service(self) -> GenerationService:
        model_name = self.model[len("ollama:"):] if self.model.startswith("ollama:") else self.model
        return OllamaGenerationService(model_name=model_name, base_url=self.base_url)


class MockAgentFactory(AgentFactory):
    """Factory returning a preconfigured service (used in testing)."""

    def __init__(self, mock_service: GenerationService = None):
        self.mock_service = mock_service

    def create_generation_service(self) -> GenerationService:
        if not self.mock_service:
            raise ValueError("No mock generation service provided")
        return self.mock_service


def get_agent_factory(model: str, api_key: Optional[str] = None) -> AgentFactory:
    """Get the appropriate agent factory based on the model name."""
    lowered = model.lower()
    if lowered.startswith("anthropic:") or lowered.startswith("claude-"):
        return ClaudeAgentFactory(model=model)
    elif lowered.startswith(("google:", "google-gla:", "gemini-")):
        return GeminiAgentFactory(model=model, api_key=api_key)
    elif lowered.startswith("ollama:") or any(name in lowered for name in ("qwen", "llama", "mistral")):
        return OllamaAgentFactory(model=model)
    else:
        # Default to Claude if no specific prefix
        return ClaudeAgentFactory(model=model)
