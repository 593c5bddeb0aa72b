import re

from .exceptions import InvalidIdentifier

LEADING_ARTICLE = re.compile(r'^(the|a|an)\s+')
BRACKETED = re.compile(r'\([^)]*\)|\[[^\]]*\]|\{[^}]*\}')
PUNCTUATION = re.compile(r'[^\w\s]|_')
WHITESPACE = re.compile(r'\s+')
IDENTIFIER = re.compile(r'^[A-Z0-9]{10}$')


def collapse(text):
    return WHITESPACE.sub(' ', text).strip()


def normalize_title(title):
    """
    'The Duke (Wicked Earls #2): A Novel' -> 'duke a novel'
    Lower-case, drop a leading article, drop bracketed segments, drop punctuation.
    """
    text = (title or '').strip().lower()
    text = LEADING_ARTICLE.sub('', text)
    text = BRACKETED.sub(' ', text)
    text = PUNCTUATION.sub('', text)
    return collapse(text)


def normalize_author(name):
    text = (name or '').strip().lower()
    text = PUNCTUATION.sub('', text)
    return collapse(text)


def normalize_identifier(raw):
    """
    Canonical form of an external identifier (ASIN / ISBN-10): ten upper-case
    alphanumerics. Blank input means "no identifier" and returns None.
    """
    if raw is None:
        return None
    value = re.sub(r'[\s-]', '', str(raw)).upper()
    if not value:
        return None
    if not IDENTIFIER.match(value):
        raise InvalidIdentifier(
            f"Identifier '{raw}' is not a 10-character alphanumeric ASIN/ISBN-10.",
            identifier=str(raw),
        )
    return value
