"""
GPT-2 Tokenizer

This module handles the pre-tokenization logic (Regex splitting) required to
replicate the GPT-2 family tokenizer. It wraps the rank-based BytePairEncoding
to provide a high-level API: `encode`, `decode` and `count_tokens`.

`count_tokens` is what the history trimmer uses to price each message.
"""

from itertools import chain
from pathlib import Path
from typing import Iterable
from typing import Iterator
from typing import List
from typing import Pattern
from typing import Union

import regex

from byte_pair_encoding import BytePairEncoding
from byte_pair_encoding import DecodingError
from vocabulary import Vocabulary

ENCODER_FILENAME = "encoder.json"
MERGES_FILENAME = "vocab.bpe"

# ==============================================================================
# GPT-2 PATTERN (gpt-2, gpt-3 davinci family)
# ==============================================================================
# Every character is whitespace, a letter, a number, or "something else", and
# each of those has a branch below, so the matches cover the input with no gaps.
GPT2_PATTERN = regex.compile(r"""
    # 1. Contractions (case-sensitive, unlike cl100k)
    's|'t|'re|'ve|'m|'ll|'d|

    # 2. Words, with an optional leading space: "hello", " hello"
    \ ?\p{L}+|

    # 3. Numbers, unbounded length: "2023", " 42"
    \ ?\p{N}+|

    # 4. Punctuation / Symbols: "!", " ...", " 🐍"
    \ ?[^\s\p{L}\p{N}]+|

    # 5. Whitespace that is not followed by a non-whitespace character.
    # This leaves the last space of a run for the next word: "a  b" -> "a", " ", " b"
    \s+(?!\S)|

    # 6. Other Whitespace
    \s+
""", regex.VERBOSE)


class Tokenizer:
    """
    A high-level tokenizer that splits text via Regex before applying BPE.
    """

    def __init__(self, bpe: BytePairEncoding, pattern: Pattern = GPT2_PATTERN):
        """
        Initialize the tokenizer.

        Args:
            bpe: The BytePairEncoding instance that owns the vocabulary and cache.
            pattern: The compiled regex pattern used to split text into chunks.
        """
        self.bpe = bpe
        self.pattern = pattern

    def __call__(self, text: str) -> List[int]:
        """
        Allows usage as a callable: `tokens = tokenizer("my text")`.
        """
        return self.encode(text)

    def pre_tokenize(self, text: str) -> Iterator[str]:
        """
        Lazily yields the pre-tokens of `text`, in order.

        Calling it again restarts the split from the beginning.
        """
        for match in self.pattern.finditer(text):
            yield match.group()

    def encode(self, text: str) -> List[int]:
        """
        Encodes a string into a list of token IDs.

        Special tokens (like <|endoftext|>) are treated as regular text.

        Args:
            text: The input string.

        Returns:
            A list of integers representing the tokens.

        Raises:
            EncodingError: If the text holds lone surrogates, or the vocabulary
                does not cover a symbol produced by merging.
        """
        encode_func = self.bpe.encode_chunk
        return list(chain.from_iterable(
            [encode_func(chunk) for chunk in self.pre_tokenize(text)]
        ))

    def count_tokens(self, text: str) -> int:
        """
        Counts the number of tokens in a string.

        Equal to `len(encode(text))`, but only sums the lengths of the cached
        per-chunk encodings instead of building the full list.

        Args:
            text: The input string.

        Returns:
            The total number of tokens.
        """
        encode_func = self.bpe.encode_chunk
        return sum(len(encode_func(chunk)) for chunk in self.pre_tokenize(text))

    def decode(self, tokens: Iterable[int]) -> str:
        """
        Decodes a list of token IDs back into a string.

        Args:
            tokens: List of token integers.

        Returns:
            The decoded string.

        Raises:
            DecodingError: On unknown ids, or if the bytes are not valid UTF-8.
        """
        byte_data = self.bpe.decode_tokens(tokens)
        try:
            return byte_data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise DecodingError(f"tokens do not form valid UTF-8: {e.reason} at byte {e.start}") from e


# --- Factories ---

def from_vocabulary(vocab: Vocabulary, cache_size: int = 2 ** 16) -> Tokenizer:
    return Tokenizer(BytePairEncoding(vocab, cache_size=cache_size), GPT2_PATTERN)


def get_gpt2_tokenizer(vocab_dir: Union[str, Path]) -> Tokenizer:
    """
    Factory for the GPT-2 tokenizer.

    Args:
        vocab_dir: Directory holding `encoder.json` and `vocab.bpe`.

    Returns:
        A configured Tokenizer instance.
    """
    vocab_dir = Path(vocab_dir)
    vocab = Vocabulary.from_files(vocab_dir / ENCODER_FILENAME, vocab_dir / MERGES_FILENAME)
    return from_vocabulary(vocab)
