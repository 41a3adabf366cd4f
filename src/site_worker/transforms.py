"""
HTML transforms served by the Python worker.

``highlight_code_blocks`` colours ``<pre><code>`` blocks with Pygments and
``minify`` shrinks a page with minify-html.
"""

import logging
from typing import List, Optional, Tuple

import minify_html
from bs4 import BeautifulSoup
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexer import Lexer
from pygments.lexers import get_lexer_by_name, guess_lexer
from pygments.util import ClassNotFound

logger = logging.getLogger(__name__)

LANGUAGE_PREFIX = "language-"

# Keep code text byte-for-byte; Pygments strips/adds newlines by default
_LEXER_OPTIONS = {"stripnl": False, "ensurenl": False}


def minify(html: str) -> str:
    """Collapse whitespace, drop optional tags and redundant attribute quotes. Comments are kept."""
    return minify_html.minify(html, keep_comments=True)


def _lexer_for(text: str, classes: Optional[List[str]]) -> Optional[Tuple[Lexer, str]]:
    """
    Pick the lexer for one code block.

    No ``class`` attribute means auto-detect.  A ``language-*`` class names
    the lexer.  Any other class leaves the block alone (returns None).

    Raises:
        ClassNotFound: the named language is unknown to Pygments
    """
    if classes is None:
        lexer = guess_lexer(text, **_LEXER_OPTIONS)
        return lexer, lexer.aliases[0] if lexer.aliases else lexer.name.lower()
    for name in classes:
        if name.startswith(LANGUAGE_PREFIX):
            language = name[len(LANGUAGE_PREFIX):]
            return get_lexer_by_name(language, **_LEXER_OPTIONS), language
    return None


def highlight_code_blocks(html: str) -> str:
    """
    Syntax-highlight every ``pre > code`` block in ``html``.

    Each highlighted block is replaced by ``<code class="language-X">``
    holding Pygments' token spans.  Pages without a block to highlight are
    returned unchanged.
    """
    soup = BeautifulSoup(html, "html.parser")
    highlighted = 0
    for code in soup.select("pre > code"):
        text = code.get_text()
        try:
            found = _lexer_for(text, code.get("class"))
        except ClassNotFound as exc:
            logger.warning("Leaving code block unhighlighted: %s", exc)
            continue
        if found is None:
            continue
        lexer, language = found

        spans = BeautifulSoup(highlight(text, lexer, HtmlFormatter(nowrap=True)), "html.parser")
        replacement = soup.new_tag("code")
        replacement["class"] = LANGUAGE_PREFIX + language
        replacement.extend(list(spans.contents))
        code.replace_with(replacement)
        highlighted += 1

    if not highlighted:
        return html
    logger.debug("Highlighted %d code block(s)", highlighted)
    return str(soup)
