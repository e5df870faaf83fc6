import json
from pathlib import Path

import pytest

from tokenizer import ENCODER_FILENAME
from tokenizer import MERGES_FILENAME
from tokenizer import from_vocabulary
from vocabulary import Vocabulary
from vocabulary import bytes_to_unicode

# Every byte is a token (id == byte value), so any UTF-8 text can be encoded.
# The merges below build " hello" style words on top of them:
#   256 he, 257 ll, 258 hell, 259 hello, 260 Ġw, 261 or, 262 Ġwor, 263 ld, 264 Ġworld
MERGES = [
    ("h", "e"),
    ("l", "l"),
    ("he", "ll"),
    ("hell", "o"),
    ("Ġ", "w"),
    ("o", "r"),
    ("Ġw", "or"),
    ("l", "d"),
    ("Ġwor", "ld"),
]


def byte_level_sources():
    byte_encoder = bytes_to_unicode()
    token_map = {byte_encoder[b]: b for b in range(256)}
    for first, second in MERGES:
        token_map[first + second] = len(token_map)
    merges_text = "#version: 0.2\n" + "".join(f"{a} {b}\n" for a, b in MERGES)
    return json.dumps(token_map), merges_text


@pytest.fixture
def vocab():
    return Vocabulary.load(*byte_level_sources())


@pytest.fixture
def enc(vocab):
    return from_vocabulary(vocab)


@pytest.fixture
def vocab_dir(tmp_path: Path) -> Path:
    token_map_text, merges_text = byte_level_sources()
    d = tmp_path / "vocab"
    d.mkdir()
    (d / ENCODER_FILENAME).write_text(token_map_text, encoding="utf-8")
    (d / MERGES_FILENAME).write_text(merges_text, encoding="utf-8")
    return d
