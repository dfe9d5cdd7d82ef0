from __future__ import annotations

import time
from dataclasses import asdict, dataclass, fields, replace
from typing import Any

from loguru import logger

from dinopedia.agents.workflow import DinosaurResearchWorkflow
from dinopedia.config import Settings, settings
from dinopedia.errors import ConfigurationError
from dinopedia.llm_client import ChatClient
from dinopedia.models.dinosaur import ResearchResult
from dinopedia.tools.api_client import DinosaurApiClient
from dinopedia.tools.information_extractor import InformationExtractor
from dinopedia.tools.tavily_search import DinosaurTavilySearch

LOG_LEVELS = {"debug": 0, "info": 1, "warn": 2, "error": 3}
_LOGURU_LEVELS = {"debug": "DEBUG", "info": "INFO", "warn": "WARNING", "error": "ERROR"}

_SECRET_FIELDS = ("openai_api_key", "tavily_api_key")
_SEARCH_FIELDS = {"tavily_api_key", "tavily_max_results"}
_LLM_FIELDS = {"openai_api_key", "openai_model", "openai_base_url", "timeout"}
_BACKEND_FIELDS = {"backend_url", "timeout"}
_WORKFLOW_FIELDS = {"max_retries", "retry_delay", "include_fossils"}


@dataclass(frozen=True)
class AgentConfig:
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = ""
    tavily_api_key: str = ""
    tavily_max_results: int = 2
    backend_url: str = "http://localhost:3000"
    max_retries: int = 3
    retry_delay: float = 2.0  # seconds
    timeout: int = 60000  # milliseconds
    log_level: str = "info"
    include_fossils: bool = False

    @classmethod
    def resolve(cls, source: Settings | None = None, **overrides: Any) -> AgentConfig:
        """Explicit overrides win over `source` (environment / .env), which wins over defaults.

        None and "" overrides fall through to the next layer.
        """
        source = source or settings
        unknown = set(overrides) - {f.name for f in fields(cls)}
        if unknown:
            raise ConfigurationError(f"未知配置项: {', '.join(sorted(unknown))}")

        base = cls(
            openai_api_key=source.openai_api_key,
            openai_model=source.openai_model or cls.openai_model,
            openai_base_url=source.openai_base_url,
            tavily_api_key=source.tavily_api_key,
            tavily_max_results=source.tavily_max_results,
            backend_url=source.ai_agent_backend_url,
            max_retries=source.ai_agent_max_retries,
            retry_delay=source.ai_agent_retry_delay_ms / 1000,
            timeout=source.ai_agent_timeout,
            log_level=(source.ai_agent_log_level or cls.log_level).lower(),
            include_fossils=source.ai_agent_include_fossils,
        )
        explicit = {k: v for k, v in overrides.items() if v is not None and v != ""}
        return replace(base, **explicit)

    def validate(self) -> None:
        if not self.openai_api_key:
            raise ConfigurationError("OpenAI API Key 是必需的")
        if not self.tavily_api_key:
            raise ConfigurationError("Tavily API Key 是必需的")
        if not self.backend_url:
            raise ConfigurationError("后端 URL 是必需的")
        if self.max_retries < 1:
            raise ConfigurationError("max_retries 必须大于等于 1")
        if self.log_level not in LOG_LEVELS:
            raise ConfigurationError(f"无效的日志级别: {self.log_level}")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000

    def masked(self) -> dict[str, Any]:
        data = asdict(self)
        for key in _SECRET_FIELDS:
            data[key] = mask_secret(data[key])
        return data


def mask_secret(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}****{value[-4:]}"


class DinosaurAgent:
    """Facade over the research workflow: resolved config, level-filtered logging, batch runs."""

    def __init__(
        self,
        config: AgentConfig | None = None,
        *,
        search_tool: DinosaurTavilySearch | None = None,
        extractor: InformationExtractor | None = None,
        api_client: DinosaurApiClient | None = None,
        **overrides: Any,
    ):
        if config is None:
            self.config = AgentConfig.resolve(**overrides)
        else:
            unknown = set(overrides) - {f.name for f in fields(AgentConfig)}
            if unknown:
                raise ConfigurationError(f"未知配置项: {', '.join(sorted(unknown))}")
            self.config = replace(config, **{k: v for k, v in overrides.items() if v is not None and v != ""})
        self.config.validate()

        self.search_tool = search_tool or self._build_search_tool()
        self.extractor = extractor or self._build_extractor()
        self.api_client = api_client or self._build_api_client()
        self.workflow = self._build_workflow()

        self._log("info", "DinosaurAgent initialized")

    # --- Component factories ---

    def _build_search_tool(self) -> DinosaurTavilySearch:
        return DinosaurTavilySearch(
            self.config.tavily_api_key, max_results=self.config.tavily_max_results
        )

    def _build_extractor(self) -> InformationExtractor:
        chat = ChatClient(
            self.config.openai_api_key,
            self.config.openai_model,
            self.config.openai_base_url or None,
            timeout=self.config.timeout_seconds,
        )
        return InformationExtractor(chat)

    def _build_api_client(self) -> DinosaurApiClient:
        return DinosaurApiClient(self.config.backend_url, timeout=self.config.timeout_seconds)

    def _build_workflow(self) -> DinosaurResearchWorkflow:
        return DinosaurResearchWorkflow(
            self.search_tool,
            self.extractor,
            self.api_client,
            max_retries=self.config.max_retries,
            retry_delay=self.config.retry_delay,
            include_fossils=self.config.include_fossils,
        )

    def _log(self, level: str, message: str) -> None:
        if LOG_LEVELS[level] < LOG_LEVELS[self.config.log_level]:
            return
        logger.opt(depth=1).log(_LOGURU_LEVELS[level], message)

    # --- Research ---

    async def research_one(self, dinosaur_name: str) -> ResearchResult:
        start = time.monotonic()
        self._log("info", f"Researching dinosaur: {dinosaur_name}")
        try:
            result = await self.workflow.execute(dinosaur_name)
        except Exception as e:
            message = str(e) or "未知错误"
            self._log("error", f"Research raised for {dinosaur_name}: {message}")
            return ResearchResult(
                success=False,
                error=message,
                errors=[message],
                processing_time=int((time.monotonic() - start) * 1000),
            )

        processing_time = int((time.monotonic() - start) * 1000)
        if result.success:
            self._log("info", f"Research complete: {dinosaur_name} ({processing_time}ms)")
            return ResearchResult(success=True, dinosaur=result, processing_time=processing_time)

        self._log("warn", f"Research failed: {dinosaur_name}: {result.error}")
        return ResearchResult(
            success=False,
            error=result.error or "研究失败",
            errors=result.errors or [],
            processing_time=processing_time,
        )

    async def research_many(self, dinosaur_names: list[str]) -> list[ResearchResult]:
        """Research each name in order. A failing name yields a failed entry, never an exception."""
        self._log("info", f"Batch research: {', '.join(dinosaur_names)}")
        results: list[ResearchResult] = []
        for name in dinosaur_names:
            try:
                results.append(await self.research_one(name))
            except Exception as e:
                message = str(e) or "未知错误"
                self._log("error", f"Batch research failed for {name}: {message}")
                results.append(
                    ResearchResult(success=False, error=message, errors=[message], processing_time=0)
                )
        return results

    # --- Introspection ---

    async def get_stats(self) -> dict[str, Any]:
        return {"totalDinosaurs": 0, "recentActivity": [], "systemStatus": "running"}

    def get_config(self) -> dict[str, Any]:
        return self.config.masked()

    async def update_config(self, **partial: Any) -> None:
        """Apply partial settings and rebuild only the components they affect."""
        unknown = set(partial) - {f.name for f in fields(AgentConfig)}
        if unknown:
            raise ConfigurationError(f"未知配置项: {', '.join(sorted(unknown))}")
        changed = {k for k, v in partial.items() if v is not None and v != ""}
        new_config = replace(self.config, **{k: partial[k] for k in changed})
        new_config.validate()
        self.config = new_config

        if changed & _SEARCH_FIELDS:
            self.search_tool = self._build_search_tool()
        if changed & _LLM_FIELDS:
            self.extractor = self._build_extractor()
        if changed & _BACKEND_FIELDS:
            await self.api_client.aclose()
            self.api_client = self._build_api_client()
        if changed & (_SEARCH_FIELDS | _LLM_FIELDS | _BACKEND_FIELDS | _WORKFLOW_FIELDS):
            self.workflow = self._build_workflow()
        self._log("info", f"Configuration updated: {', '.join(sorted(changed)) or 'no changes'}")

    async def aclose(self) -> None:
        await self.api_client.aclose()
