from __future__ import annotations

import pytest

from calendar_agent.a2a.errors import EmptyMessageError, InvalidParamsError
from calendar_agent.a2a.extractor import DirectToolCall, MessageExtractor

pytestmark = pytest.mark.unit


def _params(*parts, **message_fields):
    return {"message": {"role": "user", "parts": list(parts), **message_fields}}


class TestExtract:
    def test_returns_first_text_part(self):
        params = _params(
            {"kind": "data", "data": {"x": 1}},
            {"kind": "text", "text": "show my events today"},
            {"kind": "text", "text": "ignored"},
        )
        assert MessageExtractor().extract(params) == "show my events today"

    def test_skips_malformed_parts(self):
        params = _params("not-a-part", {"kind": "text", "text": 42}, {"kind": "text", "text": "hi"})
        assert MessageExtractor().extract(params) == "hi"

    def test_no_text_part_is_empty_message(self):
        with pytest.raises(EmptyMessageError) as exc_info:
            MessageExtractor().extract(_params({"kind": "data", "data": {}}))
        assert exc_info.value.code == -32602
        assert exc_info.value.message == "message text cannot be empty"

    def test_whitespace_text_is_empty_message(self):
        with pytest.raises(EmptyMessageError):
            MessageExtractor().extract(_params({"kind": "text", "text": "   \n"}))

    def test_empty_parts_list_is_empty_message(self):
        with pytest.raises(EmptyMessageError):
            MessageExtractor().extract(_params())

    @pytest.mark.parametrize(
        "params",
        [
            [],
            "text",
            {},
            {"message": "hello"},
            {"message": {"parts": "hello"}},
        ],
    )
    def test_structurally_invalid_params(self, params):
        with pytest.raises(InvalidParamsError):
            MessageExtractor().extract(params)


class TestMessageId:
    def test_returns_client_message_id(self):
        params = _params({"kind": "text", "text": "hi"}, messageId="m-1")
        assert MessageExtractor().message_id(params) == "m-1"

    @pytest.mark.parametrize("params", [None, {}, {"message": {}}, _params(messageId="")])
    def test_missing_message_id(self, params):
        assert MessageExtractor().message_id(params) is None


class TestDirectToolCall:
    def test_reads_skill_and_arguments(self):
        params = {
            "message": {"parts": []},
            "metadata": {"skill": " list_events ", "arguments": {"start_date": "2026-03-02"}},
        }
        assert MessageExtractor().direct_tool_call(params) == DirectToolCall(
            skill="list_events", arguments={"start_date": "2026-03-02"}
        )

    @pytest.mark.parametrize(
        "params",
        [
            None,
            {},
            {"metadata": "x"},
            {"metadata": {"skill": ""}},
            {"metadata": {"skill": 5, "arguments": {}}},
        ],
    )
    def test_no_direct_call(self, params):
        assert MessageExtractor().direct_tool_call(params) is None

    def test_skill_without_arguments_is_invalid(self):
        with pytest.raises(InvalidParamsError, match="missing arguments"):
            MessageExtractor().direct_tool_call({"metadata": {"skill": "list_events"}})
