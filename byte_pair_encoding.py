"""
Rank-based Byte Pair Encoding (GPT-2 style).

Each pre-token is converted to its UTF-8 bytes, every byte is mapped to its
printable unicode symbol, and adjacent symbol pairs are merged in order of
merge rank until no known pair remains.

CACHING:
Chat text repeats the same words constantly (" the", " to", "\n\n"), so the
result for each pre-token is memoized in an LRU map owned by the instance.
The map is guarded by a lock, so one instance can be shared by threads. Two
threads racing on the same key compute the same value, so a race costs at
most duplicated work.
"""
import threading
from collections import OrderedDict
from typing import Iterable
from typing import List
from typing import Tuple

from vocabulary import Vocabulary


class EncodingError(ValueError):
    """Raised when text cannot be mapped onto the vocabulary."""


class DecodingError(ValueError):
    """Raised when ids do not decode to valid UTF-8 text."""


class BytePairEncoding:
    __slots__ = ('vocab', 'cache_size', '_cache', '_lock')

    def __init__(self, vocab: Vocabulary, cache_size: int = 2 ** 16):
        self.vocab = vocab
        self.cache_size = cache_size
        self._cache: "OrderedDict[str, Tuple[int, ...]]" = OrderedDict()
        self._lock = threading.Lock()

    @property
    def cache_len(self) -> int:
        """Number of pre-tokens currently cached."""
        with self._lock:
            return len(self._cache)

    def bpe(self, symbols: List[str]) -> List[str]:
        """
        Merges a symbol sequence until no adjacent pair has a merge rank.

        Every pass picks the lowest-ranked adjacent pair (`min` keeps the
        leftmost on ties), then rewrites all of its occurrences left to right.
        """
        ranks = self.vocab.merge_ranks
        word = symbols
        while len(word) > 1:
            best = min(zip(word, word[1:]), key=lambda pair: ranks.get(pair, float('inf')))
            if best not in ranks:
                break

            first, second = best
            merged = first + second
            new_word = []
            i = 0
            n = len(word)
            while i < n:
                if i < n - 1 and word[i] == first and word[i + 1] == second:
                    new_word.append(merged)
                    i += 2
                else:
                    new_word.append(word[i])
                    i += 1
            word = new_word
        return word

    def encode_chunk(self, chunk: str) -> Tuple[int, ...]:
        """Encodes a single pre-token, consulting the cache first."""
        with self._lock:
            cached = self._cache.get(chunk)
            if cached is not None:
                self._cache.move_to_end(chunk)
                return cached

        try:
            raw = chunk.encode("utf-8")
        except UnicodeEncodeError as e:
            raise EncodingError(f"cannot encode {chunk!r} as UTF-8: {e.reason}") from e

        byte_encoder = self.vocab.byte_to_unicode
        token_to_id = self.vocab.token_to_id
        ids = []
        for symbol in self.bpe([byte_encoder[b] for b in raw]):
            token_id = token_to_id.get(symbol)
            if token_id is None:
                raise EncodingError(f"symbol {symbol!r} from {chunk!r} is missing from the vocabulary")
            ids.append(token_id)
        result = tuple(ids)

        with self._lock:
            self._cache[chunk] = result
            self._cache.move_to_end(chunk)
            if len(self._cache) > self.cache_size:
                self._cache.popitem(last=False)
        return result

    def decode_tokens(self, tokens: Iterable[int]) -> bytes:
        id_to_token = self.vocab.id_to_token
        byte_decoder = self.vocab.unicode_to_byte
        out = bytearray()
        for t in tokens:
            if not isinstance(t, int) or not 0 <= t < len(id_to_token):
                raise DecodingError(f"unknown token id {t!r}")
            for ch in id_to_token[t]:
                b = byte_decoder.get(ch)
                if b is None:
                    raise DecodingError(f"token {t} contains {ch!r}, which is not a byte symbol")
                out.append(b)
        return bytes(out)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
