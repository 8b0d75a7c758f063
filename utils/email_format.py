"""
Plain-text to HTML conversion for outgoing emails.

Only a narrow subset is recognised:
  **bold**          -> <strong>bold</strong>
  [text](url)       -> <a href="url">text</a>
  bare http(s) URLs -> <a href="url">url</a>
  newlines          -> <br>
Everything else is HTML-escaped and passed through unchanged.
"""
import html
import re

_LINK_PATTERN = re.compile(
    r'\[(?P<text>[^\]\n]+)\]\((?P<href>https?://[^\s)]+)\)'
    r'|(?P<bare>https?://[^\s<>"\']+)'
)
_BOLD_PATTERN = re.compile(r'\*\*(?P<body>[^*\n]+?)\*\*')
_TRAILING_PUNCTUATION = '.,;:!?'


def _anchor(href: str, text: str) -> str:
    return f'<a href="{html.escape(href, quote=True)}">{html.escape(text, quote=True)}</a>'


def _split_trailing(url: str):
    """Separate sentence punctuation and an unmatched closing paren from a bare URL"""
    trailing = ''
    while url:
        last = url[-1]
        if last in _TRAILING_PUNCTUATION or (last == ')' and url.count(')') > url.count('(')):
            trailing = last + trailing
            url = url[:-1]
        else:
            break
    return url, trailing


def _render_link(match: re.Match) -> str:
    if match.group('href'):
        return _anchor(match.group('href'), match.group('text'))

    url, trailing = _split_trailing(match.group('bare'))
    return _anchor(url, url) + html.escape(trailing, quote=True)


def text_to_html(text: str) -> str:
    """Render a plain-text email body as HTML"""
    if not text:
        return ''

    text = text.replace('\r\n', '\n')
    pieces = []
    position = 0
    # Links are found in the raw text; the text between them is escaped on its own
    for match in _LINK_PATTERN.finditer(text):
        pieces.append(html.escape(text[position:match.start()], quote=True))
        pieces.append(_render_link(match))
        position = match.end()
    pieces.append(html.escape(text[position:], quote=True))

    bolded = _BOLD_PATTERN.sub(lambda m: f"<strong>{m.group('body')}</strong>", ''.join(pieces))
    return bolded.replace('\n', '<br>\n')


def html_document(body_html: str) -> str:
    """Wrap rendered body HTML in a minimal email document"""
    return (
        '<!DOCTYPE html>\n'
        '<html>\n'
        '<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">\n'
        f'<div style="max-width: 600px; margin: 0 auto; padding: 20px;">\n{body_html}\n</div>\n'
        '</body>\n'
        '</html>\n'
    )
