"""Tests for the chat-completion client and the bilingual analysis service."""

from __future__ import annotations

import asyncio
import datetime as dt
import json
import uuid
from typing import Optional

import httpx
import pytest

from pacering.analysis import (
    AnalysisError,
    AnalysisService,
    ChatCompletionClient,
    build_prompt,
)
from pacering.config import AnalysisSettings
from pacering.models import ActivityRecord, AppLanguage

TODAY = dt.date(2025, 6, 15)


def _record(app: str, start: dt.datetime, seconds: int, work_apps: list[str]) -> ActivityRecord:
    return ActivityRecord(
        application=app,
        start_time=start,
        end_time=start + dt.timedelta(seconds=seconds),
        session_id=uuid.uuid4(),
        daily_goal=8.0,
        work_apps=work_apps,
    )


@pytest.fixture()
def records() -> list[ActivityRecord]:
    work = ["Xcode"]
    morning = dt.datetime(2025, 6, 15, 9, 0)
    return [
        _record("Xcode", morning, 2 * 3600, work),
        _record("Music", morning + dt.timedelta(hours=2), 30 * 60, work),
        _record("Xcode", morning + dt.timedelta(hours=3), 3600, work),
        _record("Mail", dt.datetime(2025, 6, 14, 9, 0), 3600, work),
    ]


def _completion_body(text: str) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": text}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


def _client(handler, api_key: Optional[str] = "secret") -> ChatCompletionClient:
    settings = AnalysisSettings(api_key=api_key, api_url="https://llm.test/v4/chat/completions")
    return ChatCompletionClient(settings, transport=httpx.MockTransport(handler))


class TestBuildPrompt:
    def test_english_prompt_lists_today_only(self, records: list[ActivityRecord]) -> None:
        prompt = build_prompt(records, AppLanguage.ENGLISH, TODAY)

        assert "Sunday, June 15, 2025" in prompt
        assert "**Total Active Time:** 3.5 hours" in prompt
        assert "**Work Time:** 3.0 hours" in prompt
        assert "**Personal Time:** 0.5 hours" in prompt
        assert "**Number of Applications Used:** 2" in prompt
        assert "- Xcode: 3.0h (0m) [Work App]" in prompt
        assert "- Music: 0.5h (30m) [Personal]" in prompt
        assert "Mail" not in prompt
        assert prompt.index("- Xcode") < prompt.index("- Music")

    def test_chinese_prompt(self, records: list[ActivityRecord]) -> None:
        prompt = build_prompt(records, AppLanguage.CHINESE, TODAY)

        assert "2025年6月15日 星期日" in prompt
        assert "**总活跃时间：** 3.5 小时" in prompt
        assert "- Xcode: 3.0h (0m) [Work App]" in prompt

    def test_empty_day(self) -> None:
        prompt = build_prompt([], AppLanguage.ENGLISH, TODAY)
        assert "**Total Active Time:** 0.0 hours" in prompt
        assert "**Number of Applications Used:** 0" in prompt


class TestChatCompletionClient:
    def test_sends_single_user_message(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_completion_body("Great day!"))

        text = asyncio.run(_client(handler).complete("How was my day?"))

        assert text == "Great day!"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"] == {
            "model": "glm-4-flash",
            "messages": [{"role": "user", "content": "How was my day?"}],
            "temperature": 0.7,
            "max_tokens": 1000,
        }

    def test_missing_api_key(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        with pytest.raises(AnalysisError, match="API key"):
            asyncio.run(_client(handler, api_key=None).complete("hi"))

    def test_empty_choices(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"choices": []})

        with pytest.raises(AnalysisError, match="No analysis result"):
            asyncio.run(_client(handler).complete("hi"))

    def test_undecodable_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(AnalysisError, match="decode"):
            asyncio.run(_client(handler).complete("hi"))

    def test_http_error_status(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "unauthorized"})

        with pytest.raises(AnalysisError):
            asyncio.run(_client(handler).complete("hi"))

    def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AnalysisError, match="connection refused"):
            asyncio.run(_client(handler).complete("hi"))


class ScriptedClient:
    """Completion client that answers by prompt language."""

    def __init__(self, english: object, chinese: object) -> None:
        self._answers = {AppLanguage.ENGLISH: english, AppLanguage.CHINESE: chinese}
        self.prompts: list[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        language = AppLanguage.CHINESE if "请分析" in prompt else AppLanguage.ENGLISH
        await asyncio.sleep(0)
        answer = self._answers[language]
        if isinstance(answer, Exception):
            raise answer
        return str(answer)


def _service(client: ScriptedClient) -> AnalysisService:
    return AnalysisService(client, clock=lambda: dt.datetime(2025, 6, 15, 18, 0))


class TestAnalysisService:
    def test_success_sets_both_results(self, records: list[ActivityRecord]) -> None:
        client = ScriptedClient("Nice work", "干得好")
        service = _service(client)

        snapshot = asyncio.run(service.analyze(records))

        assert snapshot.error_message == ""
        assert snapshot.results == {AppLanguage.ENGLISH: "Nice work", AppLanguage.CHINESE: "干得好"}
        assert not service.is_loading
        assert len(client.prompts) == 2

    def test_english_error_wins(self, records: list[ActivityRecord]) -> None:
        client = ScriptedClient(AnalysisError("timeout"), AnalysisError("quota"))
        snapshot = asyncio.run(_service(client).analyze(records))

        assert snapshot.error_message == "English analysis failed: timeout"
        assert snapshot.results == {}

    def test_chinese_error_reported_when_english_succeeds(
        self, records: list[ActivityRecord]
    ) -> None:
        client = ScriptedClient("Nice work", AnalysisError("quota"))
        snapshot = asyncio.run(_service(client).analyze(records))

        assert snapshot.error_message == "Chinese analysis failed: quota"
        assert snapshot.results == {}

    def test_failure_keeps_previous_results(self, records: list[ActivityRecord]) -> None:
        service = _service(ScriptedClient("First", "第一"))
        asyncio.run(service.analyze(records))

        service._client = ScriptedClient(AnalysisError("down"), "第二")
        snapshot = asyncio.run(service.analyze(records))

        assert snapshot.results[AppLanguage.ENGLISH] == "First"
        assert snapshot.error_message.startswith("English analysis failed")

    def test_rejects_reentrant_requests(self, records: list[ActivityRecord]) -> None:
        service = _service(ScriptedClient("ok", "好"))

        async def run_twice() -> None:
            first = asyncio.create_task(service.analyze(records))
            await asyncio.sleep(0)
            assert service.is_loading
            with pytest.raises(AnalysisError, match="already in progress"):
                await service.analyze(records)
            await first

        asyncio.run(run_twice())
        assert service.results[AppLanguage.ENGLISH] == "ok"
