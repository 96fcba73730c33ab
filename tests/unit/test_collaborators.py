import httpx
import pytest

from commentator.domain.errors import SpeechSynthesisError, TextGenerationError
from commentator.domain.services.decision_gateway import GenerationRequest
from commentator.infrastructure.llm.anthropic_generator import AnthropicTextGenerator
from commentator.infrastructure.market_data.dexscreener_provider import DexScreenerProvider, parse_pair
from commentator.infrastructure.tts.elevenlabs_synthesizer import ElevenLabsSynthesizer

MINT = "So1idMint1111111111111111111111111111pump"

PAIR = {
    "baseToken": {"symbol": "SID", "address": MINT},
    "priceUsd": "0.0000421",
    "marketCap": 42100,
    "priceChange": {"m5": 12.5, "h1": -3.1, "h24": 80},
    "volume": {"h24": 51000.5},
    "liquidity": {"usd": 12000},
}


def _status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://api.test")
    return httpx.HTTPStatusError("boom", request=request, response=httpx.Response(code, request=request))


def test_parse_pair_reads_dexscreener_fields():
    snap = parse_pair(PAIR, MINT)

    assert snap.symbol == "SID"
    assert snap.price == pytest.approx(0.0000421)
    assert snap.market_cap == 42100
    assert (snap.change_5m, snap.change_1h, snap.change_24h) == (12.5, -3.1, 80)
    assert snap.volume_24h == 51000.5
    assert snap.liquidity == 12000


def test_parse_pair_tolerates_missing_sections():
    snap = parse_pair({"fdv": "999", "priceChange": {"m5": "n/a"}}, MINT)

    assert snap.symbol == "UNKNOWN"
    assert snap.market_cap == 999
    assert snap.change_5m == 0.0


@pytest.mark.asyncio
async def test_dexscreener_uses_first_pair(monkeypatch):
    provider = DexScreenerProvider()
    urls = []

    async def fake_request(url):
        urls.append(url)
        return [PAIR, {**PAIR, "baseToken": {"symbol": "OTHER"}}]

    monkeypatch.setattr(provider, "_request_json", fake_request)
    snap = await provider.get_snapshot(MINT)

    assert urls == [f"https://api.dexscreener.com/tokens/v1/solana/{MINT}"]
    assert snap.symbol == "SID"
    assert snap.address == MINT


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [None, [], {"pairs": None}, {"pairs": []}])
async def test_dexscreener_no_pairs_is_none(monkeypatch, payload):
    provider = DexScreenerProvider()

    async def fake_request(url):
        return payload

    monkeypatch.setattr(provider, "_request_json", fake_request)

    assert await provider.get_snapshot(MINT) is None


@pytest.mark.asyncio
async def test_anthropic_joins_text_blocks(monkeypatch):
    generator = AnthropicTextGenerator(api_key="sk-ant-test", max_tokens=99)
    sent = {}

    async def fake_post(url, payload):
        sent["url"] = url
        sent["payload"] = payload
        return {"content": [{"type": "text", "text": '{"text": '}, {"type": "tool_use"}, {"type": "text", "text": '"gm"}'}]}

    monkeypatch.setattr(generator, "_post", fake_post)
    request = GenerationRequest(system="You are Sid", history=[{"role": "user", "content": "hi"}], context_block="ctx")

    out = await generator.generate(request)

    assert out == '{"text": "gm"}'
    assert sent["url"].endswith("/v1/messages")
    assert sent["payload"]["max_tokens"] == 99
    assert sent["payload"]["system"] == "You are Sid"
    assert sent["payload"]["messages"][-1] == {"role": "user", "content": "ctx"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "outcome",
    [_status_error(529), httpx.ConnectError("refused"), {"content": []}, {"content": [{"type": "text", "text": "  "}]}],
)
async def test_anthropic_failures_raise_text_generation_error(monkeypatch, outcome):
    generator = AnthropicTextGenerator(api_key="sk-ant-test")

    async def fake_post(url, payload):
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(generator, "_post", fake_post)

    with pytest.raises(TextGenerationError):
        await generator.generate(GenerationRequest(system="s", context_block="c"))


def test_anthropic_requires_key():
    with pytest.raises(ValueError):
        AnthropicTextGenerator(api_key="")


@pytest.mark.asyncio
async def test_elevenlabs_posts_voice_settings(monkeypatch):
    synth = ElevenLabsSynthesizer(api_key="xi", voice_id="voice-1", stability=0.3)
    sent = {}

    async def fake_post(url, payload):
        sent["url"] = url
        sent["payload"] = payload
        return b"ID3audio"

    monkeypatch.setattr(synth, "_post", fake_post)

    assert await synth.synthesize("gm degens") == b"ID3audio"
    assert sent["url"].endswith("/text-to-speech/voice-1")
    assert sent["payload"]["voice_settings"]["stability"] == 0.3
    assert sent["payload"]["text"] == "gm degens"


@pytest.mark.asyncio
@pytest.mark.parametrize("outcome", [_status_error(401), httpx.ReadTimeout("slow"), b""])
async def test_elevenlabs_failures_raise(monkeypatch, outcome):
    synth = ElevenLabsSynthesizer(api_key="xi", voice_id="voice-1")

    async def fake_post(url, payload):
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(synth, "_post", fake_post)

    with pytest.raises(SpeechSynthesisError):
        await synth.synthesize("gm")
