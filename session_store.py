"""
YAML persistence for sessions.

Named sessions live at `<root>/.c/sessions/<id>.yaml`, anonymous ones under
`<root>/.c/sessions/anonymous/`. Users are expected to hand-edit these files
(e.g. to pin a message), so they are written block-style with keys in a
stable order.
"""
import logging
import uuid
from pathlib import Path
from typing import Any
from typing import Dict
from typing import Optional
from typing import Tuple
from typing import Union

import yaml

from session import Session
from session import Vendor

logger = logging.getLogger(__name__)


class SessionNotFound(LookupError):
    pass


class SessionStore:
    def __init__(self, sessions_dir: Union[str, Path]):
        self.sessions_dir = Path(sessions_dir)

    def path_for(self, session_id: str, anonymous: bool = False) -> Path:
        base = self.sessions_dir / "anonymous" if anonymous else self.sessions_dir
        return base / f"{session_id}.yaml"

    def exists(self, session_id: str) -> bool:
        return self.path_for(session_id).is_file()

    def load(self, session_id: str) -> Session:
        path = self.path_for(session_id)
        if not path.is_file():
            raise SessionNotFound(f"session {session_id!r} not found at {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{path} does not contain a session mapping")
        try:
            return Session.from_dict(data)
        except KeyError as e:
            raise ValueError(f"{path} is missing the {e.args[0]!r} field") from e

    def save(self, session: Session, path: Optional[Path] = None) -> Path:
        path = path or self.path_for(session.id)
        logger.info("Saving session to %s", path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data: Dict[str, Any] = session.to_dict()
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True, default_flow_style=False)
        return path

    def anonymous(self, vendor: Vendor, max_supported_tokens: int) -> Tuple[Session, Path]:
        """Creates a session with a generated id and returns it with the path it should be saved to."""
        session_id = uuid.uuid4().hex
        session = Session(id=session_id, vendor=vendor, max_supported_tokens=max_supported_tokens)
        return session, self.path_for(session_id, anonymous=True)
