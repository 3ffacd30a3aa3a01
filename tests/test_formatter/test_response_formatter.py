import pytest

from reasonloop.exceptions import FormatError, TruncationError
from reasonloop.llm import LLMResponse
from reasonloop.response_formatter import (
    check_truncation,
    extract_thinking,
    format_final_response,
    parse_json_output,
    strip_code_fences,
)


def test_json_fence_is_stripped_and_compacted():
    formatted = format_final_response('```json\n{"a":1}\n```', json_mode=True)

    assert formatted.success is True
    assert formatted.response == '{"a":1}'
    assert formatted.parsed == {"a": 1}


def test_bare_fence_and_whitespace():
    formatted = format_final_response('  ```\n[1, 2, {"k": "v"}]\n```  ', json_mode=True)

    assert formatted.response == '[1,2,{"k":"v"}]'


def test_unicode_is_kept_verbatim():
    formatted = format_final_response('{"city": "Zürich"}', json_mode=True)

    assert formatted.response == '{"city":"Zürich"}'


def test_invalid_json_reports_failure_without_raising():
    formatted = format_final_response("not json", model="openai/gpt-4o", json_mode=True)

    assert formatted.success is False
    assert formatted.response == "not json"
    assert formatted.error.startswith("Response is not valid JSON")


def test_non_json_mode_passes_text_through():
    text = '```json\n{"a":1}\n```'
    assert format_final_response(text).response == text


def test_multipart_content_is_flattened():
    content = [
        {"type": "text", "text": "Hello "},
        {"type": "image_url", "image_url": {"url": "data:image/png;base64,AA=="}},
        {"type": "text", "text": "world"},
    ]
    assert format_final_response(content).response == "Hello world"


def test_strip_code_fences_leaves_plain_text():
    assert strip_code_fences("plain") == "plain"
    assert strip_code_fences("```python\nprint(1)\n```") == "print(1)"


def test_parse_json_output_raises_format_error():
    with pytest.raises(FormatError):
        parse_json_output("{broken")


@pytest.mark.parametrize("reason", ["length", "max_tokens", "LENGTH"])
def test_truncation_names_the_token_cap(reason):
    with pytest.raises(TruncationError) as exc:
        check_truncation(LLMResponse(content="cut", finish_reason=reason), 2048)
    assert exc.value.max_tokens == 2048
    assert "max_tokens=2048" in str(exc.value)


def test_normal_finish_is_not_truncated():
    check_truncation(LLMResponse(content="done", finish_reason="stop"), 2048)
    check_truncation(LLMResponse(content="done"), 2048)


def test_extract_thinking_prefers_reported_reasoning():
    assert extract_thinking(LLMResponse(content="<think>inline</think>ok", reasoning=" provider ")) == "provider"
    assert extract_thinking(LLMResponse(content="<think>step one</think>answer")) == "step one"
    assert extract_thinking(LLMResponse(content="answer")) == ""
