"""
Runtime settings, read from the environment.

    C_ROOT        base directory for `.c/` (default: $HOME)
    C_VOCAB_DIR   directory holding encoder.json and vocab.bpe (default: $C_ROOT/.c/vocab)
    C_LOG_LEVEL   logging level name (default: WARNING)
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping
from typing import Optional


@dataclass(frozen=True)
class Settings:
    root: Path
    vocab_dir: Path
    log_level: str = "WARNING"

    @property
    def sessions_dir(self) -> Path:
        return self.root / ".c" / "sessions"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        root = env.get("C_ROOT") or env.get("HOME") or str(Path.home())
        vocab_dir = env.get("C_VOCAB_DIR") or os.path.join(root, ".c", "vocab")
        return cls(root=Path(root),
                   vocab_dir=Path(vocab_dir),
                   log_level=env.get("C_LOG_LEVEL", "WARNING").upper())
