"""
GPT-2 Vocabulary Loader

This module parses the two static resources that define a GPT-2 family
byte-level BPE vocabulary:

1. `encoder.json`: a JSON object mapping token strings to integer ids.
2. `vocab.bpe`: an ordered list of merge rules, one "symbol1 symbol2" pair per
   line. The position of a rule in the list IS its rank (lower merges first).

Tokens are not raw bytes. Every byte 0-255 is first mapped to a printable
unicode character (see `bytes_to_unicode`), so that a token like " hello" is
stored as "Ġhello".
"""
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict
from typing import List
from typing import Mapping
from typing import Tuple
from typing import Union

logger = logging.getLogger(__name__)


class InvalidVocabulary(ValueError):
    """Raised when the token map or the merge rules cannot be parsed."""


def bytes_to_unicode() -> Dict[int, str]:
    """
    Builds the GPT-2 byte -> unicode table.

    Printable latin-1 bytes map to themselves. The remaining 68 bytes (control
    characters, space, and a few others) are shifted up to code points 256+
    in ascending byte order, so that no token ever contains whitespace or
    control characters.
    """
    printable = (list(range(ord("!"), ord("~") + 1))
                 + list(range(ord("¡"), ord("¬") + 1))
                 + list(range(ord("®"), ord("ÿ") + 1)))
    table = {b: chr(b) for b in printable}
    n = 0
    for b in range(256):
        if b not in table:
            table[b] = chr(256 + n)
            n += 1
    return table


def _parse_token_map(text: str) -> Dict[str, int]:
    try:
        data = json.loads(text)
    except ValueError as e:
        raise InvalidVocabulary(f"token map is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidVocabulary("token map must be a JSON object")

    seen: Dict[int, str] = {}
    for token, token_id in data.items():
        # bool is a subclass of int, but `true` is not a token id
        if not isinstance(token_id, int) or isinstance(token_id, bool):
            raise InvalidVocabulary(f"token {token!r} has non-integer id {token_id!r}")
        if token_id in seen:
            raise InvalidVocabulary(f"id {token_id} is shared by {seen[token_id]!r} and {token!r}")
        seen[token_id] = token

    if seen and (min(seen) != 0 or max(seen) != len(seen) - 1):
        raise InvalidVocabulary(f"token ids must be exactly 0..{len(seen) - 1}")
    return data


def _parse_merge_rules(text: str) -> Dict[Tuple[str, str], int]:
    ranks: Dict[Tuple[str, str], int] = {}
    rank = 0
    for line_no, line in enumerate(text.splitlines(), start=1):
        if line_no == 1 and line.startswith("#version"):
            continue
        if not line.strip():
            continue
        parts = line.split()
        if len(parts) != 2:
            raise InvalidVocabulary(f"merge rule on line {line_no} is not a symbol pair: {line!r}")
        # first occurrence wins, a later duplicate must not lower the priority
        ranks.setdefault((parts[0], parts[1]), rank)
        rank += 1
    return ranks


@dataclass(frozen=True)
class Vocabulary:
    token_to_id: Mapping[str, int]
    id_to_token: Tuple[str, ...]
    merge_ranks: Mapping[Tuple[str, str], int]
    byte_to_unicode: Mapping[int, str]
    unicode_to_byte: Mapping[str, int]

    def __len__(self) -> int:
        return len(self.id_to_token)

    @classmethod
    def load(cls, token_map_text: str, merge_rules_text: str) -> "Vocabulary":
        """
        Builds the lookup tables from already-read resource contents.

        Args:
            token_map_text: Contents of `encoder.json`.
            merge_rules_text: Contents of `vocab.bpe`.

        Returns:
            An immutable Vocabulary.

        Raises:
            InvalidVocabulary: If either source is malformed, or a merge rule
                produces a symbol that is not in the token map.
        """
        token_to_id = _parse_token_map(token_map_text)
        merge_ranks = _parse_merge_rules(merge_rules_text)

        for first, second in merge_ranks:
            if first + second not in token_to_id:
                raise InvalidVocabulary(f"merge ({first!r}, {second!r}) yields unknown token {first + second!r}")

        id_to_token: List[str] = [""] * len(token_to_id)
        for token, token_id in token_to_id.items():
            id_to_token[token_id] = token

        byte_encoder = bytes_to_unicode()
        logger.debug("Loaded vocabulary with %d tokens and %d merge rules", len(id_to_token), len(merge_ranks))
        return cls(
            token_to_id=MappingProxyType(token_to_id),
            id_to_token=tuple(id_to_token),
            merge_ranks=MappingProxyType(merge_ranks),
            byte_to_unicode=MappingProxyType(byte_encoder),
            unicode_to_byte=MappingProxyType({v: k for k, v in byte_encoder.items()}),
        )

    @classmethod
    def from_files(cls, encoder_path: Union[str, Path], merges_path: Union[str, Path]) -> "Vocabulary":
        with open(encoder_path, "r", encoding="utf-8") as f:
            token_map_text = f.read()
        with open(merges_path, "r", encoding="utf-8") as f:
            merge_rules_text = f.read()
        return cls.load(token_map_text, merge_rules_text)
