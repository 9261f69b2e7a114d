from typing import List, Sequence

import pytest

from glossa.configuration import SettingsStore
from glossa.dom import LiveDocument
from glossa.errors import TranslationProviderConfigurationError
from glossa.providers import BlockTranslationProvider
from glossa.structures import Settings, TranslatedBlock

ARTICLE_PAGE = """
<html>
  <head><title>Dogs in the City</title></head>
  <body>
    <nav><ul><li>Home</li><li>Archive of every story we ever published</li></ul></nav>
    <article>
      <h1>Dogs in the City</h1>
      <p id="first" class="lead">The dog runs quickly through the busy park every single morning.</p>
      <p id="second">Many owners walk their animals before they leave for work in town.</p>
      <p id="third">Some <b>neighbours</b> complain about the noise, but most enjoy the company.</p>
    </article>
    <footer><p>Copyright notice for the whole website and all its pages.</p></footer>
  </body>
</html>
"""


def _no_config() -> None:
    raise TranslationProviderConfigurationError("no configuration in tests")


class ScriptedProvider(BlockTranslationProvider):
    """Prefixes every block; raises for blocks containing a failure marker."""

    name = "scripted"

    def __init__(self, fail_marker: str | None = None) -> None:
        self.fail_marker = fail_marker
        self.calls: List[List[str]] = []

    def translate_blocks(
        self,
        blocks: Sequence[str],
        *,
        settings: Settings,
    ) -> List[TranslatedBlock]:
        self.calls.append(list(blocks))
        if self.fail_marker and any(self.fail_marker in block for block in blocks):
            raise RuntimeError("upstream exploded")
        return [
            TranslatedBlock(original=block, translated=f"DE {block}") for block in blocks
        ]


@pytest.fixture
def settings_store() -> SettingsStore:
    return SettingsStore(loader=_no_config)


@pytest.fixture
def page() -> LiveDocument:
    return LiveDocument.from_html(ARTICLE_PAGE)
