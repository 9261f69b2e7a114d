import asyncio
import json
from types import SimpleNamespace

import pytest

from glossa.errors import (
    AnalysisFailure,
    MissingCredentialError,
    TranslationProviderConfigurationError,
    TranslationProviderError,
)
from glossa.providers import (
    EchoBlockProvider,
    LexiconWordTranslator,
    OpenAIBlockProvider,
    OpenAIWordAnalyzer,
    build_block_provider,
    build_prompt,
    language_code,
    strip_block_prefix,
)
from glossa.structures import Settings


def _config(**overrides):
    values = {
        "LLM_PROVIDER": "openai",
        "OPENAI_API_KEY": "sk-test",
        "GLOSSA_MODEL": None,
        "AZURE_OPENAI_API_KEY": None,
        "AZURE_OPENAI_ENDPOINT": None,
        "AZURE_OPENAI_API_VERSION": None,
        "AZURE_OPENAI_DEPLOYMENT_NAME": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _with_reply(service, content):
    completions = FakeCompletions(content)
    service._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return completions


def test_build_prompt_numbers_blocks_and_describes_learner() -> None:
    prompt = build_prompt(["Erster.", "Zweiter."], Settings(cefr_level="A2"))

    assert "Translate to German (Level A2) for a English speaker." in prompt
    assert "#1: Erster.\n\n#2: Zweiter." in prompt
    assert "A2 learner" in prompt
    assert "learner" not in build_prompt(["x"], Settings(simplify=False))


def test_strip_block_prefix() -> None:
    assert strip_block_prefix("#12:  Hallo") == "Hallo"
    assert strip_block_prefix("Kein #1: Präfix") == "Kein #1: Präfix"


def test_language_code() -> None:
    assert language_code("german") == "de"
    assert language_code("Klingon") == "kl"


def test_missing_api_key_is_reported() -> None:
    with pytest.raises(MissingCredentialError, match="Missing OpenAI API key"):
        OpenAIBlockProvider(_config(OPENAI_API_KEY=None))


def test_incomplete_azure_configuration_names_missing_keys() -> None:
    with pytest.raises(MissingCredentialError, match="AZURE_OPENAI_ENDPOINT"):
        OpenAIBlockProvider(_config(LLM_PROVIDER="azure_openai", AZURE_OPENAI_API_KEY="k"))


def test_block_translation_parses_fenced_json() -> None:
    provider = OpenAIBlockProvider(_config(GLOSSA_MODEL="gpt-test"))
    reply = json.dumps(
        {"blocks": [{"original": "The dog.", "translated": "#1: Der Hund."}, {"translated": "Die Katze."}]}
    )
    completions = _with_reply(provider, f"```json\n{reply}\n```")

    blocks = provider.translate_blocks(["The dog.", "The cat."], settings=Settings())

    assert [(block.original, block.translated) for block in blocks] == [
        ("The dog.", "Der Hund."),
        ("The cat.", "Die Katze."),
    ]
    request = completions.requests[0]
    assert request["model"] == "gpt-test"
    assert request["response_format"] == {"type": "json_object"}


def test_malformed_and_empty_replies_raise() -> None:
    provider = OpenAIBlockProvider(_config())

    _with_reply(provider, json.dumps({"result": "nope"}))
    with pytest.raises(TranslationProviderError, match="malformed"):
        provider.translate_blocks(["x"], settings=Settings())

    _with_reply(provider, "")
    with pytest.raises(TranslationProviderError, match="Empty response from API"):
        provider.translate_blocks(["x"], settings=Settings())


def test_debug_logging_goes_to_stderr(capsys) -> None:
    provider = OpenAIBlockProvider(_config(), debug=True)
    _with_reply(provider, json.dumps({"blocks": []}))

    provider.translate_blocks(["x"], settings=Settings())

    err = capsys.readouterr().err
    assert "[glossa][provider-debug] provider.request.messages" in err


def test_word_analysis_success_and_malformed_payload() -> None:
    analyzer = OpenAIWordAnalyzer(_config())
    _with_reply(
        analyzer,
        json.dumps({"translation": "dog", "pos": "noun", "article": "der", "example": None}),
    )
    analysis = analyzer.analyze("Hund", "Der Hund läuft.", Settings())
    assert (analysis.translation, analysis.pos, analysis.article) == ("dog", "noun", "der")
    assert analysis.example is None

    _with_reply(analyzer, json.dumps({"pos": "noun"}))
    with pytest.raises(AnalysisFailure):
        analyzer.analyze("Hund", "Der Hund läuft.", Settings())


def test_build_block_provider() -> None:
    assert isinstance(build_block_provider("echo", _config()), EchoBlockProvider)
    with pytest.raises(TranslationProviderConfigurationError):
        build_block_provider("carrier-pigeon", _config())


def test_lexicon_translator_reads_json_for_language_pair(tmp_path) -> None:
    (tmp_path / "de-en.json").write_text(json.dumps({"Hund": "dog"}), encoding="utf-8")
    translator = LexiconWordTranslator(tmp_path / "{source}-{target}.json")

    assert asyncio.run(translator.initialize("German", "English")) is True
    assert asyncio.run(translator.translate("Hund")) == "dog"
    assert asyncio.run(translator.translate("Katze")) is None


def test_lexicon_translator_reads_tsv_and_falls_back_to_lowercase(tmp_path) -> None:
    path = tmp_path / "words.tsv"
    path.write_text("# comment\thidden\nhaus\thouse\n", encoding="utf-8")
    translator = LexiconWordTranslator(path)

    assert asyncio.run(translator.initialize("German", "English")) is True
    assert asyncio.run(translator.translate("Haus")) == "house"


def test_missing_lexicon_is_unavailable(tmp_path) -> None:
    translator = LexiconWordTranslator(tmp_path / "absent.json")

    assert asyncio.run(translator.initialize("German", "English")) is False
    assert asyncio.run(translator.translate("Hund")) is None
