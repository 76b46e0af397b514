import httpx
import pytest

from defence_coach.llm import LLMClient, LLMError


def client_for(handler, api_key="key-123"):
    return LLMClient(api_key, "test-model", "https://llm.test/v1/chat/completions", transport=httpx.MockTransport(handler))


async def test_complete_returns_stripped_content():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = request.read()
        return httpx.Response(200, json={"choices": [{"message": {"content": '  ["Q1"]  '}}]})

    content = await client_for(handler).complete("sys", "user", purpose="questions")
    assert content == '["Q1"]'
    assert seen["auth"] == "Bearer key-123"
    assert b'"model":"test-model"' in seen["body"].replace(b" ", b"")


async def test_missing_key_raises_without_request():
    def handler(request):
        raise AssertionError("should not be called")

    with pytest.raises(LLMError):
        await client_for(handler, api_key=None).complete("sys", "user", purpose="questions")


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, text="overloaded"),
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json={"choices": [{"message": {"content": "   "}}]}),
        httpx.Response(200, text="<html>"),
    ],
)
async def test_unusable_responses_raise(response):
    with pytest.raises(LLMError):
        await client_for(lambda request: response).complete("sys", "user", purpose="feedback")


async def test_transport_error_raises():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(LLMError):
        await client_for(handler).complete("sys", "user", purpose="feedback")
