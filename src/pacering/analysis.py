"""Natural-language daily reports from a hosted chat-completion model."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Optional, Protocol

import httpx
from pydantic import BaseModel, ValidationError

from .config import AnalysisSettings
from .models import ActivityRecord, AppLanguage

logger = logging.getLogger(__name__)


class AnalysisError(Exception):
    """Raised when a report cannot be produced."""


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatCompletionRequest(BaseModel):
    model: str
    messages: list[ChatMessage]
    temperature: float
    max_tokens: int


class ChatChoice(BaseModel):
    message: ChatMessage
    finish_reason: Optional[str] = None


class ChatUsage(BaseModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatCompletionResponse(BaseModel):
    choices: list[ChatChoice]
    usage: Optional[ChatUsage] = None


class CompletionClient(Protocol):
    async def complete(self, prompt: str) -> str:
        ...


class ChatCompletionClient:
    """Sends a single user prompt and returns the first completion's text."""

    def __init__(
        self,
        settings: AnalysisSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 60.0,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._timeout = timeout

    async def complete(self, prompt: str) -> str:
        if not self._settings.api_key:
            raise AnalysisError("No API key configured; set PACERING_API_KEY.")
        request = ChatCompletionRequest(
            model=self._settings.model,
            messages=[ChatMessage(role="user", content=prompt)],
            temperature=self._settings.temperature,
            max_tokens=self._settings.max_tokens,
        )
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._timeout
            ) as client:
                response = await client.post(
                    self._settings.api_url,
                    json=request.model_dump(),
                    headers={"Authorization": f"Bearer {self._settings.api_key}"},
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise AnalysisError(str(exc) or exc.__class__.__name__) from exc

        try:
            parsed = ChatCompletionResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise AnalysisError("Could not decode the analysis response.") from exc
        if not parsed.choices:
            raise AnalysisError("No analysis result received.")
        if parsed.usage:
            logger.debug("Completion used %d tokens.", parsed.usage.total_tokens)
        return parsed.choices[0].message.content


@dataclass(slots=True)
class AnalysisSnapshot:
    is_loading: bool
    results: dict[AppLanguage, str] = field(default_factory=dict)
    error_message: str = ""


class AnalysisService:
    """Produces the daily report in every supported language at once.

    Both requests run concurrently. If either fails, the English error wins
    over the Chinese one, earlier results are kept and ``error_message`` is
    set; there is no retry.
    """

    def __init__(
        self,
        client: CompletionClient,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._client = client
        self._clock = clock
        self.is_loading = False
        self.results: dict[AppLanguage, str] = {}
        self.error_message = ""

    def snapshot(self) -> AnalysisSnapshot:
        return AnalysisSnapshot(
            is_loading=self.is_loading,
            results=dict(self.results),
            error_message=self.error_message,
        )

    async def analyze(self, records: list[ActivityRecord]) -> AnalysisSnapshot:
        if self.is_loading:
            raise AnalysisError("An analysis is already in progress.")
        self.is_loading = True
        self.error_message = ""
        languages = list(AppLanguage)
        today = self._clock().date()
        try:
            outcomes = await asyncio.gather(
                *(self._client.complete(build_prompt(records, lang, today)) for lang in languages),
                return_exceptions=True,
            )
        finally:
            self.is_loading = False

        for language, outcome in zip(languages, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                if not isinstance(outcome, AnalysisError):
                    logger.error("Unexpected analysis failure.", exc_info=outcome)
                self.error_message = f"{_LANGUAGE_NAMES[language]} analysis failed: {outcome}"
                logger.warning("%s", self.error_message)
                return self.snapshot()

        self.results = {lang: str(text) for lang, text in zip(languages, outcomes)}
        logger.info("Analysis generated for %d records.", len(records))
        return self.snapshot()


_LANGUAGE_NAMES = {AppLanguage.ENGLISH: "English", AppLanguage.CHINESE: "Chinese"}


def build_prompt(records: list[ActivityRecord], language: AppLanguage, today: date) -> str:
    """Describe today's usage and ask for a markdown report."""
    today_records = [r for r in records if r.start_time.date() == today]
    total_seconds = sum(r.duration_seconds for r in today_records)

    usage: defaultdict[str, int] = defaultdict(int)
    for record in today_records:
        usage[record.application] += record.duration_seconds
    sorted_usage = sorted(usage.items(), key=lambda item: item[1], reverse=True)

    work_apps = today_records[0].work_apps if today_records else []
    work_seconds = sum(r.duration_seconds for r in today_records if r.application in work_apps)

    total_hours = total_seconds / 3600
    work_hours = work_seconds / 3600
    breakdown = "\n".join(
        f"- {app}: {seconds / 3600:.1f}h ({(seconds % 3600) // 60}m) "
        f"{'[Work App]' if app in work_apps else '[Personal]'}"
        for app, seconds in sorted_usage
    )
    template = _PROMPTS[language]
    return template.format(
        day=_format_day(today, language),
        total_hours=f"{total_hours:.1f}",
        work_hours=f"{work_hours:.1f}",
        personal_hours=f"{total_hours - work_hours:.1f}",
        app_count=len(usage),
        breakdown=breakdown,
        work_apps=", ".join(work_apps),
    )


def _format_day(day: date, language: AppLanguage) -> str:
    if language is AppLanguage.CHINESE:
        weekdays = "一二三四五六日"
        return f"{day.year}年{day.month}月{day.day}日 星期{weekdays[day.weekday()]}"
    return f"{day:%A}, {day:%B} {day.day}, {day.year}"


_PROMPTS: dict[AppLanguage, str] = {
    AppLanguage.ENGLISH: """\
Please analyze my productivity data for {day} and provide a fun, engaging, and insightful summary. Here's my activity data:

## 📊 Overall Statistics:
- **Total Active Time:** {total_hours} hours
- **Work Time:** {work_hours} hours
- **Personal Time:** {personal_hours} hours
- **Number of Applications Used:** {app_count}

## 📱 Application Usage Breakdown:
{breakdown}

## 🎯 Work Applications:
{work_apps}

Please provide a fun and engaging analysis in **markdown format** that includes:
1. **A catchy title or emoji-rich summary**
2. **Key insights about my productivity patterns**
3. **Most productive hours/applications**
4. **Balance between work and personal time**
5. **Fun observations or gentle suggestions for improvement**
6. **A motivational closing remark**

Make it personal, encouraging, and slightly humorous while being informative. Use emojis, bullet points, and proper markdown formatting to make it more engaging!""",
    AppLanguage.CHINESE: """\
请分析我在{day}的工作效率数据，并提供一个有趣、引人入胜且富有洞察力的总结。以下是我的活动数据：

## 📊 总体统计：
- **总活跃时间：** {total_hours} 小时
- **工作时间：** {work_hours} 小时
- **个人时间：** {personal_hours} 小时
- **使用的应用程序数量：** {app_count}

## 📱 应用程序使用详情：
{breakdown}

## 🎯 工作应用程序：
{work_apps}

请提供一个有趣且引人入胜的**markdown格式**分析，包括：
1. **吸引人的标题或富含表情符号的摘要**
2. **关于我的工作效率模式的关键洞察**
3. **最高效的时间段/应用程序**
4. **工作与个人时间的平衡**
5. **有趣的观察或温和的改进建议**
6. **激励性的结尾语**

请用个人化、鼓励性和略带幽默的方式提供信息。使用表情符号、项目符号和适当的markdown格式使其更具吸引力！""",
}
