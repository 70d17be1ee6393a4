"""Fixed-width Base62 codec for slugs.

Maps a non-negative integer identifier onto a fixed-width alphanumeric slug
and back. The codec is pure and keeps no state.

Encoding Layout
===============
::
    id = 125
      125 = 2 * 62 + 1
      digits  → "21"
      padded  → "000021"   (width 6, pad char "0")

    decode("000021") → 0*62^5 + ... + 2*62 + 1 = 125

How to Use
===========
**Encode a storage identifier**::
    from shortener.base62 import encode
    slug = encode(125)          # "000021"

**Decode a slug**::
    from shortener.base62 import decode
    decode("000021")            # 125

Key Behaviours
===============
- Alphabet order is ``0-9``, ``a-z``, ``A-Z``; index 0 is the pad character.
- ``encode(0)`` is the all-pad string of the configured width.
- Identifiers that need more than ``width`` digits raise ``SlugOverflow``
  instead of being truncated into another identifier's slug.
- Characters outside the alphabet raise ``InvalidSlugFormat``.

Functions:
    encode():        Integer → fixed-width slug.
    decode():        Slug → integer.
    max_id():        Largest identifier representable in a given width.
    is_valid_slug(): Format check without decoding.
"""

from shortener.exceptions import InvalidSlugFormat, SlugOverflow

__all__ = ["ALPHABET", "BASE", "DEFAULT_WIDTH", "encode", "decode", "max_id", "is_valid_slug"]

ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
BASE = len(ALPHABET)
DEFAULT_WIDTH = 6

_INDEX = {char: position for position, char in enumerate(ALPHABET)}


def max_id(width: int = DEFAULT_WIDTH) -> int:
    return BASE**width - 1


def encode(number: int, width: int = DEFAULT_WIDTH) -> str:
    """Encode ``number`` as a Base62 string left-padded to ``width``.

    Raises:
        ValueError: If ``number`` is negative.
        SlugOverflow: If ``number`` needs more than ``width`` digits.
    """
    if number < 0:
        raise ValueError("Number must be non-negative")
    if number > max_id(width):
        raise SlugOverflow(f"Identifier {number} does not fit in {width} Base62 digits")

    digits = []
    while number > 0:
        number, remainder = divmod(number, BASE)
        digits.append(ALPHABET[remainder])

    return "".join(reversed(digits)).rjust(width, ALPHABET[0])


def decode(slug: str) -> int:
    """Decode a Base62 slug back to its integer identifier.

    Raises:
        InvalidSlugFormat: If ``slug`` is empty or holds a character outside the alphabet.
    """
    if not slug:
        raise InvalidSlugFormat("Slug must be non-empty")

    number = 0
    for char in slug:
        position = _INDEX.get(char)
        if position is None:
            raise InvalidSlugFormat(f"Invalid character {char!r} in slug {slug!r}")
        number = number * BASE + position
    return number


def is_valid_slug(slug: str, width: int = DEFAULT_WIDTH) -> bool:
    return len(slug) == width and all(char in _INDEX for char in slug)
